"""Wall clock helpers. All wire timestamps are epoch milliseconds."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def epoch_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)

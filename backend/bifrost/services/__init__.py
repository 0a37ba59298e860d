"""Engine services: event bus and scheduled tasks."""

from bifrost.services.events import EventBus
from bifrost.services.tasks import TaskScheduler

__all__ = ["EventBus", "TaskScheduler"]

"""Unit tests for wire message schemas and serialization."""

import json

import pytest
from pydantic import ValidationError

from bifrost.exceptions import ActorNotFoundError, StaleTokenError
from bifrost.schemas.messages import (
    HandshakeMessage,
    MarkerDetectedMessage,
    QueryTokensMessage,
    SceneChangedMessage,
    TokenDeletedMessage,
    encode_message,
    inbound_adapter,
    to_wire,
)
from bifrost.schemas.results import TrackingResult
from bifrost.schemas.snapshot import SnapshotOptions


class TestInbound:
    """Tests for inbound frame validation."""

    def test_numeric_ids_become_strings(self):
        message = inbound_adapter.validate_python(
            {"type": "marker_detected", "id": 3, "marker_id": 42, "x": 1, "y": 2}
        )

        assert isinstance(message, MarkerDetectedMessage)
        assert message.id == "3"
        assert message.marker_id == "42"
        assert message.token_type == "unknown"
        assert message.metadata == {}

    def test_null_metadata_and_extra_fields(self):
        message = inbound_adapter.validate_python(
            {"type": "marker_updated", "marker_id": "7", "x": 0, "y": 0, "metadata": None, "confidence": 0.9}
        )

        assert message.metadata == {}
        assert not hasattr(message, "confidence")

    def test_query_type_alias(self):
        message = inbound_adapter.validate_python({"type": "query_tokens", "queryType": "players_only"})

        assert isinstance(message, QueryTokensMessage)
        assert message.query_type == "players_only"
        assert message.parameters == {}

    def test_unknown_type_is_rejected(self):
        with pytest.raises(ValidationError):
            inbound_adapter.validate_python({"type": "teleport"})

    def test_snapshot_options_accept_both_casings(self):
        assert SnapshotOptions.model_validate({"includeHidden": True}).include_hidden is True
        assert SnapshotOptions.model_validate({"filter_types": ["item"]}).filter_types == ["item"]


class TestOutbound:
    """Tests for outbound serialization."""

    def test_handshake_keys(self):
        wire = to_wire(HandshakeMessage(version="1.0.0", host_version="12.331", scene_id="scene-1", timestamp=5))

        assert wire == {
            "type": "handshake",
            "timestamp": 5,
            "client": "bifrost",
            "version": "1.0.0",
            "host_version": "12.331",
            "scene_id": "scene-1",
        }

    def test_none_fields_are_dropped(self):
        wire = to_wire(SceneChangedMessage(scene_id="scene-1"))

        assert "scene_name" not in wire
        assert wire["scene_id"] == "scene-1"

    def test_token_deleted_uses_camel_case_id(self):
        assert json.loads(encode_message(TokenDeletedMessage(token_id="t1")))["tokenId"] == "t1"

    def test_plain_dicts_pass_through(self):
        assert to_wire({"type": "custom", "value": 1, "skip": None}) == {"type": "custom", "value": 1}


class TestTrackingResult:
    """Tests for TrackingResult."""

    def test_failure_from_actor_error_carries_candidates(self):
        result = TrackingResult.failure(ActorNotFoundError("Alice", ["Bob"]), marker_id="10")

        assert result.to_wire() == {
            "success": False,
            "markerId": "10",
            "error": 'Player Actor "Alice" not found. Available actors: Bob',
            "code": "ACTOR_NOT_FOUND",
            "candidates": ["Bob"],
        }

    def test_stale_token_failure_is_retryable(self):
        error = StaleTokenError("42", "t1")
        result = TrackingResult.failure(error, marker_id="42")

        assert error.retryable is True
        assert result.code == "STALE_TOKEN"
        assert result.candidates is None

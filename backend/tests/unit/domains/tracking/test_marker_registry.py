"""Unit tests for the marker tracking registry."""

import pytest

from bifrost.domains.tracking.registry import MarkerRegistry
from bifrost.models.host import Disposition, DisplayMode


class TestDetect:
    """Tests for marker detection."""

    @pytest.mark.asyncio
    async def test_player_without_matching_actor_fails(self, host, registry):
        """Scenario A: unknown player name lists candidates and creates nothing."""
        result = await registry.detect("10", "Alice", 0, 0, "player")

        assert result.success is False
        assert result.code == "ACTOR_NOT_FOUND"
        assert sorted(result.candidates) == ["Bob", "Guard"]
        assert "Alice" in result.error
        assert host.list_tokens() == []
        assert registry.tracked_count == 0

    @pytest.mark.asyncio
    async def test_enemy_creates_standalone_hostile_token(self, host, registry, clock):
        """Scenario B: enemy marker creates a hostile token at the position."""
        result = await registry.detect(42, "Goblin", 100, 200, "enemy")

        assert result.success is True
        assert result.action == "created_standalone"
        assert result.marker_id == "42"

        token = host.get_token(result.token_id)
        assert token is not None
        assert (token.x, token.y) == (100, 200)
        assert token.name == "Goblin"
        assert token.disposition == Disposition.HOSTILE
        assert token.img == "icons/svg/mystery-man-red.svg"
        assert token.display_name == DisplayMode.HOVER

        record = registry.get("42")
        assert record.token_id == result.token_id
        assert record.semantic_type == "enemy"
        assert token.get_flag("bifrost", "aruco") == {
            "markerId": "42",
            "type": "enemy",
            "createdAt": clock.now,
            "lastUpdate": clock.now,
        }
        assert token.get_flag("bifrost", "standalone") is True

    @pytest.mark.asyncio
    async def test_repeated_detection_updates_position(self, host, registry):
        """Scenario C: re-detecting a mapped marker moves the same token."""
        first = await registry.detect("42", "Goblin", 100, 200, "enemy")
        second = await registry.detect("42", "Goblin", 150, 250, "enemy")

        assert second.success is True
        assert second.action == "position_updated"
        assert second.token_id == first.token_id
        assert registry.tracked_count == 1
        assert len(host.list_tokens()) == 1

        token = host.get_token(first.token_id)
        assert (token.x, token.y) == (150, 250)

    @pytest.mark.asyncio
    async def test_player_creates_linked_token(self, host, registry):
        """Scenario D: player marker creates a token linked to the actor."""
        result = await registry.detect("1", "bob", 300, 400, "player")

        assert result.success is True
        assert result.action == "created_player"

        token = host.get_token(result.token_id)
        assert token.name == "Bob"
        assert token.actor_id == "actor-bob"
        assert token.actor_link is True
        assert token.img == "bob-token.png"
        assert token.disposition == Disposition.FRIENDLY
        assert token.vision is True
        assert token.display_bars == DisplayMode.OWNER_HOVER

    @pytest.mark.asyncio
    async def test_player_with_token_on_scene_moves_it(self, host, registry):
        """Test that an actor's existing token is reused instead of duplicated."""
        [existing] = await host.create_tokens([{"name": "Bob", "actor_id": "actor-bob", "x": 0, "y": 0}])

        result = await registry.detect("1", "Bob", 500, 600, "player")

        assert result.action == "updated_existing"
        assert result.token_id == existing.id
        assert len(host.list_tokens()) == 1
        token = host.get_token(existing.id)
        assert (token.x, token.y) == (500, 600)

    @pytest.mark.asyncio
    async def test_type_is_normalized(self, registry):
        """Test that semantic types are case-insensitive."""
        result = await registry.detect("5", "Chest", 0, 0, "ITEM")

        assert result.success is True
        assert registry.get("5").semantic_type == "item"

    @pytest.mark.asyncio
    async def test_unlisted_type_uses_unknown_template(self, host, registry):
        """Test that custom types fall back to the generic template."""
        result = await registry.detect("6", "Trap", 0, 0, "custom")

        token = host.get_token(result.token_id)
        assert token.img == "icons/svg/hazard.svg"
        assert token.get_flag("bifrost", "aruco.type") == "custom"

    @pytest.mark.asyncio
    async def test_metadata_overrides_template(self, host, registry):
        """Test that metadata can set image, size and rotation."""
        result = await registry.detect(
            "7",
            "Crate",
            0,
            0,
            "item",
            {"image": "crate.png", "size": 2, "rotation": 45, "hidden": True},
        )

        token = host.get_token(result.token_id)
        assert token.img == "crate.png"
        assert (token.width, token.height) == (2, 2)
        assert token.rotation == 45
        assert token.hidden is True

    @pytest.mark.asyncio
    async def test_auto_create_disabled(self, host, clock):
        """Test that unmapped markers are rejected when auto-create is off."""
        registry = MarkerRegistry(host, clock=clock, auto_create=False)

        result = await registry.detect("42", "Goblin", 0, 0, "enemy")

        assert result.success is False
        assert result.code == "TOKEN_CREATION_DISABLED"
        assert host.list_tokens() == []

    @pytest.mark.asyncio
    async def test_second_marker_for_same_token_evicts_first(self, registry):
        """Test that no two markers ever drive the same token."""
        first = await registry.detect("1", "Bob", 0, 0, "player")
        second = await registry.detect("2", "Bob", 10, 10, "player")

        assert second.token_id == first.token_id
        assert registry.is_tracked("1") is False
        assert registry.is_tracked("2") is True
        assert registry.marker_for_token(first.token_id) == "2"
        assert registry.tracked_count == 1


class TestUpdate:
    """Tests for position updates."""

    @pytest.mark.asyncio
    async def test_unknown_marker_fails(self, registry):
        """Test updating a marker that was never detected."""
        result = await registry.update("99", 1, 2)

        assert result.success is False
        assert result.code == "MARKER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_applies_metadata_and_keeps_other_fields(self, host, registry, clock):
        """Test that only provided metadata fields change."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy", {"elevation": 5})
        clock.advance(2500)

        result = await registry.update("42", 30, 40, {"rotation": 90, "hidden": True})

        assert result.success is True
        token = host.get_token(created.token_id)
        assert (token.x, token.y) == (30, 40)
        assert token.rotation == 90
        assert token.hidden is True
        assert token.elevation == 5
        assert registry.get("42").last_update == clock.now
        assert token.get_flag("bifrost", "aruco.lastUpdate") == clock.now

    @pytest.mark.asyncio
    async def test_stale_token_is_pruned(self, host, registry):
        """Test self-healing when the token was deleted outside the registry."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")
        await host.delete_token(created.token_id)

        result = await registry.update("42", 5, 5)

        assert result.success is False
        assert result.code == "STALE_TOKEN"
        assert registry.is_tracked("42") is False
        assert registry.marker_for_token(created.token_id) is None

    @pytest.mark.asyncio
    async def test_detect_after_stale_creates_new_token(self, host, registry):
        """Test that a stale mapping fails once, then re-detection starts over."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")
        await host.delete_token(created.token_id)

        stale = await registry.detect("42", "Goblin", 5, 5, "enemy")
        fresh = await registry.detect("42", "Goblin", 5, 5, "enemy")

        assert stale.code == "STALE_TOKEN"
        assert fresh.success is True
        assert fresh.action == "created_standalone"
        assert fresh.token_id != created.token_id
        assert len(host.list_tokens()) == 1


class TestRemove:
    """Tests for marker removal."""

    @pytest.mark.asyncio
    async def test_removes_token_and_record(self, host, registry):
        """Test that losing a marker deletes its token."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")

        result = await registry.remove("42")

        assert result.success is True
        assert result.action == "token_removed"
        assert result.token_id == created.token_id
        assert host.get_token(created.token_id) is None
        assert registry.is_tracked("42") is False

    @pytest.mark.asyncio
    async def test_unmapped_marker_reports_nothing_to_remove(self, registry):
        """Test removing a marker that is not tracked."""
        result = await registry.remove(99)

        assert result.success is False
        assert result.error == "No token tracked for marker 99"

    @pytest.mark.asyncio
    async def test_record_dropped_when_token_already_gone(self, host, registry):
        """Test that removal succeeds even if the host lost the token first."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")
        await host.delete_token(created.token_id)

        result = await registry.remove("42")

        assert result.success is True
        assert registry.tracked_count == 0

    @pytest.mark.asyncio
    async def test_redetect_after_remove_gets_fresh_record(self, registry, clock):
        """Test that remove then detect produces a new createdAt."""
        first = await registry.detect("42", "Goblin", 0, 0, "enemy")
        created_at = registry.get("42").created_at
        await registry.remove("42")
        clock.advance(5000)

        second = await registry.detect("42", "Goblin", 0, 0, "enemy")

        assert second.action == "created_standalone"
        assert second.token_id != first.token_id
        assert registry.get("42").created_at == created_at + 5000


class TestBookkeeping:
    """Tests for clear, untrack and status reporting."""

    @pytest.mark.asyncio
    async def test_clear_forgets_records_but_keeps_tokens(self, host, registry):
        """Test that clearing tracking leaves host tokens alone."""
        await registry.detect("1", "Goblin", 0, 0, "enemy")
        await registry.detect("2", "Chest", 0, 0, "item")

        assert registry.clear() == 2
        assert registry.tracked_count == 0
        assert len(host.list_tokens()) == 2

    @pytest.mark.asyncio
    async def test_forget_token(self, registry):
        """Test dropping a record by token id."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")

        assert registry.forget_token(created.token_id) == "42"
        assert registry.forget_token(created.token_id) is None
        assert registry.is_tracked("42") is False

    @pytest.mark.asyncio
    async def test_untrack_token_strips_flag(self, host, registry):
        """Test that untracking keeps the token but drops its tracking flag."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")

        assert await registry.untrack_token(created.token_id) is True
        assert await registry.untrack_token(created.token_id) is False

        token = host.get_token(created.token_id)
        assert token is not None
        assert token.get_flag("bifrost", "aruco") is None
        assert registry.is_tracked("42") is False

    @pytest.mark.asyncio
    async def test_is_token_tracked_requires_live_mapping(self, host, registry):
        """Test that a flag alone does not make a token tracked."""
        created = await registry.detect("42", "Goblin", 0, 0, "enemy")
        token = host.get_token(created.token_id)
        assert registry.is_token_tracked(token) is True

        registry.clear()

        assert registry.is_token_tracked(host.get_token(created.token_id)) is False

    @pytest.mark.asyncio
    async def test_status_resolves_tokens(self, host, registry, clock):
        """Test the tracked-token status report."""
        created = await registry.detect("42", "Goblin", 100, 200, "enemy")
        lost = await registry.detect("43", "Orc", 0, 0, "enemy")
        await host.delete_token(lost.token_id)

        entries = {entry["markerId"]: entry for entry in registry.status()}

        assert entries["42"] == {
            "markerId": "42",
            "tokenId": created.token_id,
            "exists": True,
            "name": "Goblin",
            "type": "enemy",
            "position": {"x": 100, "y": 200},
            "lastUpdate": clock.now,
        }
        assert entries["43"]["exists"] is False
        assert entries["43"]["name"] is None
        assert entries["43"]["position"] is None

"""Integration tests for the HTTP control surface."""

import asyncio

import pytest
from conftest import FakeConnector, make_settings, seed_host
from fastapi.testclient import TestClient

from bifrost.adapters.memory import InMemoryHost
from bifrost.core.engine import BifrostEngine
from bifrost.main import create_app
from bifrost.services.events import EventBus

API = "/api/v1/bifrost"


@pytest.fixture
def http_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def seeded_host() -> InMemoryHost:
    host = InMemoryHost(EventBus(), version="12.331")
    asyncio.run(seed_host(host))
    asyncio.run(
        host.create_tokens(
            [
                {"id": "tok-bob", "name": "Bob", "actor_id": "actor-bob", "actor_link": True, "x": 100, "y": 100},
                {"id": "tok-torch", "name": "Torch", "x": 200, "y": 200},
                {"id": "tok-trap", "name": "Trap", "hidden": True},
            ]
        )
    )
    return host


@pytest.fixture
def engine(seeded_host, http_connector) -> BifrostEngine:
    return BifrostEngine(seeded_host, make_settings(), events=seeded_host.events, connector=http_connector)


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine=engine)) as client:
        yield client


class TestHealth:
    """Tests for the health endpoint."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "bifrost"}

    def test_engine_missing_without_lifespan(self, engine):
        """Test that routes report unavailability before startup."""
        response = TestClient(create_app(engine=engine)).get(f"{API}/status")

        assert response.status_code == 503


class TestConnection:
    """Tests for connection control."""

    def test_status(self, client):
        body = client.get(f"{API}/status").json()

        assert body["ready"] is True
        assert body["websocket"]["connected"] is False
        assert body["tokenManager"] == {"trackedTokens": 0}

    def test_connect_and_disconnect(self, client, http_connector):
        connected = client.post(f"{API}/connect").json()

        assert connected["connected"] is True
        assert connected["websocket"]["phase"] == "connected"
        [handshake] = http_connector.socket.of_type("handshake")
        assert handshake["scene_id"] == "scene-1"

        disconnected = client.post(f"{API}/disconnect").json()

        assert disconnected == {
            "connected": False,
            "websocket": {
                "connected": False,
                "url": "ws://localhost:3001",
                "reconnect_attempts": 0,
                "phase": "disconnected",
                "socket_state": None,
            },
        }

    def test_send_requires_connection(self, client):
        assert client.post(f"{API}/send", json={"type": "ping"}).json() == {"sent": False}

    def test_send_raw_frame(self, client, http_connector):
        client.post(f"{API}/connect")

        response = client.post(f"{API}/send", json={"type": "custom_probe", "value": 3})

        assert response.json() == {"sent": True}
        [probe] = http_connector.socket.of_type("custom_probe")
        assert probe["value"] == 3

    def test_send_requires_type(self, client):
        assert client.post(f"{API}/send", json={"value": 3}).status_code == 422


class TestTokens:
    """Tests for token listing and sync pushes."""

    def test_list_tokens(self, client):
        body = client.get(f"{API}/tokens").json()

        assert {t["id"] for t in body["tokens"]} == {"tok-bob", "tok-torch"}
        assert body["summary"]["total"] == 2
        assert body["summary"]["byType"] == {"player": 1, "unknown": 1}

    def test_list_tokens_with_filters(self, client):
        hidden = client.get(f"{API}/tokens", params={"include_hidden": True}).json()
        players = client.get(f"{API}/tokens", params={"types": ["player"]}).json()

        assert hidden["summary"]["total"] == 3
        assert [t["id"] for t in players["tokens"]] == ["tok-bob"]

    def test_sync_pushes_token_list(self, client, http_connector):
        client.post(f"{API}/connect")

        response = client.post(f"{API}/sync", json={"include_hidden": True})

        assert response.json() == {"sent": True}
        [update] = http_connector.socket.of_type("token_list_update")
        assert update["summary"]["total"] == 3

    def test_sync_players_and_untracked(self, client, http_connector):
        client.post(f"{API}/connect")

        assert client.post(f"{API}/sync/players").json() == {"sent": True}
        assert client.post(f"{API}/sync/untracked").json() == {"sent": True}

        [players] = http_connector.socket.of_type("token_list_update")
        assert [t["id"] for t in players["tokens"]] == ["tok-bob"]
        assert http_connector.socket.of_type("untracked_tokens")

    def test_mapping_request(self, client, http_connector):
        client.post(f"{API}/connect")

        assert client.post(f"{API}/sync/mapping", json={"token_ids": ["tok-torch"]}).json() == {"sent": True}
        assert client.post(f"{API}/sync/mapping", json={"token_ids": []}).status_code == 422

        [mapping] = http_connector.socket.of_type("request_token_mapping")
        assert [t["id"] for t in mapping["tokens"]] == ["tok-torch"]

    def test_single_token_routes(self, client, http_connector):
        client.post(f"{API}/connect")

        assert client.post(f"{API}/tokens/tok-torch/sync").json() == {"sent": True}
        assert client.post(f"{API}/tokens/tok-torch/assign-marker").json() == {"sent": True}
        assert client.post(f"{API}/tokens/tok-torch/untrack").json() == {"untracked": False}

        [assign] = http_connector.socket.of_type("assign_marker_to_token")
        assert assign["token"]["position"] == {"x": 200, "y": 200}

    def test_unknown_token_is_404(self, client):
        for path in ("sync", "assign-marker", "untrack"):
            assert client.post(f"{API}/tokens/missing/{path}").status_code == 404


class TestTrackingAndAutoSync:
    """Tests for tracking, auto-sync and calibration controls."""

    def test_tracking_report_and_clear(self, client, engine):
        asyncio.run(engine.registry.detect("42", "Goblin", 0, 0, "enemy"))

        tracking = client.get(f"{API}/tracking").json()

        assert tracking["count"] == 1
        assert tracking["tracked_tokens"][0]["markerId"] == "42"
        assert client.post(f"{API}/tracking/clear").json() == {"cleared": 1}
        assert client.get(f"{API}/tracking").json()["count"] == 0

    def test_auto_sync_start_and_stop(self, client):
        started = client.post(f"{API}/auto-sync/start", json={"interval_seconds": 60})

        assert started.json() == {"running": True, "interval_seconds": 60}
        assert client.get(f"{API}/status").json()["autoSync"] == {"running": True, "interval": 60}
        assert client.post(f"{API}/auto-sync/stop").json() == {"running": False}
        assert client.get(f"{API}/status").json()["autoSync"]["running"] is False

    def test_auto_sync_default_interval(self, client):
        assert client.post(f"{API}/auto-sync/start").json() == {"running": True, "interval_seconds": 30}
        client.post(f"{API}/auto-sync/stop")

    def test_auto_sync_rejects_non_positive_interval(self, client):
        assert client.post(f"{API}/auto-sync/start", json={"interval_seconds": 0}).status_code == 422

    def test_calibration(self, client, http_connector):
        assert client.get(f"{API}/calibration").json() == {"calibration": {}}
        assert client.post(f"{API}/calibration/start").json() == {"sent": False}

        client.post(f"{API}/connect")

        assert client.post(f"{API}/calibration/start").json() == {"sent": True}
        assert http_connector.socket.of_type("start_calibration")

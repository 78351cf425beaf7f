"""
Integration tests for the live subscription WebSocket.

Tests /ws/messages — sub/unsub, initial batch, live deltas, re-subscription,
and observer release.
"""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from backend.main import app


@pytest.fixture
def client(store):
    """Return a synchronous TestClient for WS testing, with lifespan running."""
    with TestClient(app) as client:
        yield client


def insert(client, store, text: str, source: str = "api", type: str = "info", created_at: datetime | None = None):
    return client.portal.call(store.insert, type, source, text, created_at)


def receive(ws) -> dict:
    return json.loads(ws.receive_text())


def receive_until_ready(ws, sub: str) -> list[dict]:
    frames = []
    for _ in range(100):
        frame = receive(ws)
        if frame["type"] == "ready" and frame["sub"] == sub:
            return frames
        frames.append(frame)
    pytest.fail("ready never received")


def subscribe(ws, sub: str, name: str, params: dict | None = None) -> None:
    frame = {"type": "sub", "id": sub, "name": name}
    if params is not None:
        frame["params"] = params
    ws.send_text(json.dumps(frame))


def wait_for_observers(store, count: int) -> None:
    for _ in range(100):
        if store.observer_count == count:
            return
        time.sleep(0.01)
    pytest.fail(f"observer_count stuck at {store.observer_count}")


class TestMessagesSubscription:
    def test_initial_batch_then_ready(self, client, store):
        for i in range(3):
            insert(client, store, f"m{i}", created_at=datetime(2024, 3, 1, 9, 0, i, tzinfo=UTC))

        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages", {"limit": 2, "sortDirection": "desc"})
            frames = receive_until_ready(ws, "messages")

        assert [f["type"] for f in frames] == ["added", "added"]
        assert [f["fields"]["text"] for f in frames] == ["m2", "m1"]
        assert frames[0]["collection"] == "messages"
        assert frames[0]["sub"] == "messages"
        assert set(frames[0]["fields"]) == {"type", "source", "text", "createdAt"}

    def test_live_insert_is_pushed(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages", {"limit": 5})
            assert receive_until_ready(ws, "messages") == []

            message = insert(client, store, "hello")
            frame = receive(ws)

        assert frame["type"] == "added"
        assert frame["id"] == message.id
        assert frame["fields"]["text"] == "hello"
        assert frame["before"] is None

    def test_filter_params_apply(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages", {"types": "error", "search": "disk"})
            receive_until_ready(ws, "messages")

            insert(client, store, "disk full", type="info")
            wanted = insert(client, store, "disk full", type="error")
            frame = receive(ws)

        assert frame["id"] == wanted.id

    def test_resubscribe_resets(self, client, store):
        insert(client, store, "one")
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages", {"limit": 5})
            receive_until_ready(ws, "messages")

            subscribe(ws, "messages", "messages", {"limit": 5, "sortDirection": "asc"})
            reset = receive(ws)
            frames = receive_until_ready(ws, "messages")

        assert reset == {"type": "reset", "sub": "messages"}
        assert len(frames) == 1
        assert store.observer_count <= 1

    def test_unknown_publication(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "x", "everything")
            frame = receive(ws)

        assert frame == {"type": "nosub", "sub": "x", "error": "unknown_publication"}

    def test_malformed_frames_are_ignored(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            ws.send_text("not json")
            ws.send_text(json.dumps({"type": "sub", "name": "messages"}))
            ws.send_text(json.dumps(["sub"]))
            subscribe(ws, "messages", "messages", {"limit": "many"})
            assert receive_until_ready(ws, "messages") == []

    def test_binary_frame_does_not_close_socket(self, client, store):
        insert(client, store, "kept")
        with client.websocket_connect("/ws/messages") as ws:
            ws.send_bytes(b'{"type": "sub", "id": "messages", "name": "messages"}')
            subscribe(ws, "messages", "messages", {"limit": 5})
            frames = receive_until_ready(ws, "messages")

        assert [f["fields"]["text"] for f in frames] == ["kept"]


class TestRelease:
    def test_unsub_releases_observer(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages")
            receive_until_ready(ws, "messages")
            assert store.observer_count == 1

            ws.send_text(json.dumps({"type": "unsub", "id": "messages"}))
            # Frames are handled in order, so once this answers the unsub is done
            subscribe(ws, "probe", "nothing")
            receive(ws)

            assert store.observer_count == 0

    def test_disconnect_releases_every_subscription(self, client, store):
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messages", "messages")
            subscribe(ws, "messageSources", "messageSources")
            receive_until_ready(ws, "messages")
            receive_until_ready(ws, "messageSources")
            assert store.observer_count == 2

        wait_for_observers(store, 0)


class TestSourcesSubscription:
    def test_sources_announced_once(self, client, store):
        insert(client, store, "x", source="cron")
        with client.websocket_connect("/ws/messages") as ws:
            subscribe(ws, "messageSources", "messageSources")
            initial = receive_until_ready(ws, "messageSources")

            for source in ["cron", "api", "api", "worker"]:
                insert(client, store, "x", source=source)
            live = [receive(ws), receive(ws)]

        assert [f["id"] for f in initial] == ["cron"]
        assert initial[0]["collection"] == "message_sources"
        assert [f["id"] for f in live] == ["api", "worker"]

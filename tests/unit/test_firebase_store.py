# tests/unit/test_firebase_store.py
"""Tests for the Firebase Realtime Database REST client (mocked transport)."""

import asyncio
import json

import httpx
import pytest

from mycosync.core.errors import PersistenceFailed, RemoteUnavailable
from mycosync.drivers.firebase_store import FirebaseStore, FirebaseSubscription

DB = "https://grow-room.firebaseio.example"


def _store(handler, token="tok-1"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseStore(DB, token_provider=lambda: token, client=client)


class TestRequests:
    @pytest.mark.asyncio
    async def test_read_uses_json_suffix_and_auth(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Temperature": 24.0})

        store = _store(handler)
        assert await store.read("/Sensors") == {"Temperature": 24.0}

        assert seen[0].url.path == "/Sensors.json"
        assert seen[0].url.params["auth"] == "tok-1"

    @pytest.mark.asyncio
    async def test_no_token_no_auth_param(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=None)

        store = _store(handler, token=None)
        assert await store.read("Sensors") is None
        assert "auth" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_write_is_put_and_append_is_post(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path, json.loads(request.content)))
            if request.method == "POST":
                return httpx.Response(200, json={"name": "-Nabc"})
            return httpx.Response(200, json=True)

        store = _store(handler)
        await store.write("Actuators/heating", True)
        key = await store.append("Actuators/history", {"heating": True, "timestamp": 1})

        assert key == "-Nabc"
        assert seen[0] == ("PUT", "/Actuators/heating.json", True)
        assert seen[1][0] == "POST"

    @pytest.mark.asyncio
    async def test_range_query_encodes_parameters_and_sorts(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={
                "-b": {"timestamp": 2000, "Temperature": 24.0},
                "-a": {"timestamp": 1000, "Temperature": 23.0},
            })

        store = _store(handler)
        rows = await store.range_query("Sensors/history", "timestamp", limit=1440)

        assert [k for k, _ in rows] == ["-a", "-b"]
        assert seen[0].url.params["orderBy"] == '"timestamp"'
        assert seen[0].url.params["limitToLast"] == "1440"

    @pytest.mark.asyncio
    async def test_http_error_status_is_persistence_failure(self):
        store = _store(lambda request: httpx.Response(401, json={"error": "Permission denied"}))

        with pytest.raises(PersistenceFailed) as exc:
            await store.write("Ranges", {"tempMin": 23})
        assert exc.value.path == "Ranges"

    @pytest.mark.asyncio
    async def test_connection_error_is_remote_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("no route", request=request)

        with pytest.raises(RemoteUnavailable):
            await _store(handler).read("Sensors")


class TestStreamEvents:
    def _subscription(self):
        seen = []
        sub = FirebaseSubscription(store=None, path="Sensors", callback=lambda v, c: seen.append((v, c)))
        return sub, seen

    def test_put_at_root_replaces_value(self):
        sub, seen = self._subscription()
        sub.handle_event("put", json.dumps({"path": "/", "data": {"Temperature": 24.0}}))

        assert seen == [({"Temperature": 24.0}, "")]

    def test_put_and_patch_under_child(self):
        sub, seen = self._subscription()
        sub.handle_event("put", json.dumps({"path": "/", "data": {"Temperature": 24.0, "Humidity": 80}}))
        sub.handle_event("put", json.dumps({"path": "/Temperature", "data": 25.0}))
        sub.handle_event("patch", json.dumps({"path": "/", "data": {"Humidity": 82, "CO2": 900}}))

        assert seen[1] == ({"Temperature": 25.0, "Humidity": 80}, "Temperature")
        assert seen[2][0] == {"Temperature": 25.0, "Humidity": 82, "CO2": 900}

    def test_keep_alive_is_ignored_and_cancel_stops(self):
        sub, seen = self._subscription()

        assert sub.handle_event("keep-alive", "null") is True
        assert sub.handle_event("auth_revoked", "credential is no longer valid") is False
        assert seen == []

    def test_callback_errors_do_not_break_stream(self):
        def boom(value, changed):
            raise RuntimeError("listener bug")

        sub = FirebaseSubscription(store=None, path="Sensors", callback=boom)
        assert sub.handle_event("put", json.dumps({"path": "/", "data": 1})) is True

    @pytest.mark.asyncio
    async def test_subscription_streams_events_to_callback(self):
        body = (
            'event: put\ndata: {"path": "/", "data": {"heating": true}}\n\n'
            'event: keep-alive\ndata: null\n\n'
            'event: cancel\ndata: null\n\n'
        )

        def handler(request):
            assert request.headers["Accept"] == "text/event-stream"
            return httpx.Response(200, content=body.encode())

        store = _store(handler)
        seen = []
        await store.subscribe("Actuators", lambda v, c: seen.append(v))
        for _ in range(50):
            if seen:
                break
            await asyncio.sleep(0.01)
        await store.close()

        assert seen[0] == {"heating": True}

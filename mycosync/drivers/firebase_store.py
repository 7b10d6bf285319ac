from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import httpx

from ..core.errors import PersistenceFailed, RemoteUnavailable
from ..domain.interfaces import ChangeCallback

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]


def _apply_put(tree: Any, path: str, data: Any) -> Any:
    """Return ``tree`` with ``data`` placed at ``path`` (None deletes)."""
    parts = [p for p in path.split("/") if p]
    if not parts:
        return data
    root = dict(tree) if isinstance(tree, dict) else {}
    node = root
    for p in parts[:-1]:
        child = node.get(p)
        child = dict(child) if isinstance(child, dict) else {}
        node[p] = child
        node = child
    if data is None:
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = data
    return root


class FirebaseSubscription:
    """Server-sent-events listener on one database path.

    Keeps a local copy of the value at the path, applies ``put``/``patch``
    events to it and hands the full value to the callback. Reconnects after
    ``retry_seconds`` when the stream drops.
    """

    def __init__(
        self,
        store: "FirebaseStore",
        path: str,
        callback: ChangeCallback,
        retry_seconds: float = 5.0,
    ) -> None:
        self.path = path
        self._store = store
        self._callback = callback
        self._retry = retry_seconds
        self._value: Any = None
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"firebase_stream:{self.path}")

    def cancel(self) -> None:
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
                logger.info("Stream on %s closed by server; reconnecting", self.path)
            except asyncio.CancelledError:
                raise
            except httpx.HTTPError as e:
                logger.warning("Stream on %s failed: %s; retrying in %ss", self.path, e, self._retry)
            await asyncio.sleep(self._retry)

    async def _listen(self) -> None:
        async with self._store.client.stream(
            "GET",
            self._store.url(self.path),
            params=self._store.params(),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(self._store.timeout, read=None),
        ) as resp:
            resp.raise_for_status()
            event: Optional[str] = None
            async for line in resp.aiter_lines():
                if line.startswith("event:"):
                    event = line[len("event:"):].strip()
                elif line.startswith("data:"):
                    if not self.handle_event(event, line[len("data:"):].strip()):
                        return
                    event = None

    def handle_event(self, event: Optional[str], raw: str) -> bool:
        """Apply one SSE event. Returns False when the stream must be reopened."""
        if event in ("keep-alive", None):
            return True
        if event in ("cancel", "auth_revoked"):
            logger.warning("Stream on %s: %s", self.path, event)
            return False
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Undecodable %s event on %s: %r", event, self.path, raw)
            return True
        if not isinstance(payload, dict):
            return True

        changed = str(payload.get("path", "/"))
        data = payload.get("data")
        if event == "put":
            self._value = _apply_put(self._value, changed, data)
        elif event == "patch" and isinstance(data, dict):
            for key, value in data.items():
                self._value = _apply_put(self._value, f"{changed.rstrip('/')}/{key}", value)
        else:
            return True

        try:
            self._callback(self._value, changed.strip("/"))
        except Exception:
            logger.exception("Subscriber on %s raised", self.path)
        return True


class FirebaseStore:
    """RemoteStore over the Firebase Realtime Database REST API."""

    def __init__(
        self,
        database_url: str,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base = database_url.rstrip("/")
        self._token = token_provider or (lambda: None)
        self.timeout = timeout
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self._subs: list[FirebaseSubscription] = []

    def url(self, path: str) -> str:
        return f"{self._base}/{path.strip('/')}.json"

    def params(self, **extra: str) -> dict[str, str]:
        out = dict(extra)
        token = self._token()
        if token:
            out["auth"] = token
        return out

    async def _request(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        params = self.params(**kwargs.pop("params", {}))
        try:
            resp = await self.client.request(method, self.url(path), params=params, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise PersistenceFailed(
                f"{method} {path} -> HTTP {e.response.status_code}", operation=operation, path=path
            ) from e
        except httpx.HTTPError as e:
            raise RemoteUnavailable(f"{method} {path}: {e}", path=path) from e
        if not resp.content:
            return None
        return resp.json()

    async def read(self, path: str) -> Any:
        return await self._request("GET", path, "read")

    async def write(self, path: str, value: Any) -> None:
        await self._request("PUT", path, "write", json=value)

    async def append(self, path: str, record: dict[str, Any]) -> str:
        data = await self._request("POST", path, "append", json=record)
        return str(data["name"])

    async def range_query(
        self, path: str, order_by: str, limit: Optional[int] = None
    ) -> list[tuple[str, dict[str, Any]]]:
        # Query parameters must be JSON-encoded; the response object is unordered.
        params = {"orderBy": json.dumps(order_by)}
        if limit is not None:
            params["limitToLast"] = str(limit)
        data = await self._request("GET", path, "range_query", params=params)
        if not isinstance(data, dict):
            return []
        rows = [(k, v) for k, v in data.items() if isinstance(v, dict) and order_by in v]
        rows.sort(key=lambda kv: (kv[1][order_by], kv[0]))
        return rows

    async def delete(self, path: str) -> None:
        await self._request("DELETE", path, "delete")

    async def subscribe(self, path: str, callback: ChangeCallback) -> FirebaseSubscription:
        sub = FirebaseSubscription(self, path, callback)
        sub.start()
        self._subs.append(sub)
        return sub

    async def close(self) -> None:
        for sub in self._subs:
            sub.cancel()
        self._subs.clear()
        if self._owns_client:
            await self.client.aclose()

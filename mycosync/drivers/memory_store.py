from __future__ import annotations
import copy
import logging
from typing import Any, Optional

from ..core.errors import PersistenceFailed, RemoteUnavailable
from ..domain.interfaces import ChangeCallback

logger = logging.getLogger(__name__)


def _parts(path: str) -> list[str]:
    return [p for p in path.strip("/").split("/") if p]


def _related(a: list[str], b: list[str]) -> bool:
    n = min(len(a), len(b))
    return a[:n] == b[:n]


class MemorySubscription:
    def __init__(self, store: "InMemoryStore", path: str, callback: ChangeCallback) -> None:
        self.path = path
        self.callback = callback
        self._store = store
        self.active = True

    def cancel(self) -> None:
        self.active = False
        self._store._subs = [s for s in self._store._subs if s is not self]


class InMemoryStore:
    """Hierarchical store held in a nested dict.

    Subscribers are called synchronously with the full value at their path
    whenever a write touches it, and once immediately on subscribe. Set
    ``available = False`` or add paths to ``failing_paths`` to inject errors.
    """

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._root: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._subs: list[MemorySubscription] = []
        self._push_counter = 0
        self.available = True
        self.failing_paths: set[str] = set()
        self.ops: list[tuple[str, str]] = []

    # --- tree helpers ---

    def _get(self, parts: list[str]) -> Any:
        node: Any = self._root
        for p in parts:
            if not isinstance(node, dict) or p not in node:
                return None
            node = node[p]
        return node

    def _set(self, parts: list[str], value: Any) -> None:
        if not parts:
            self._root = value if isinstance(value, dict) else {}
            return
        node = self._root
        for p in parts[:-1]:
            child = node.get(p)
            if not isinstance(child, dict):
                child = {}
                node[p] = child
            node = child
        if value is None:
            node.pop(parts[-1], None)
        else:
            node[parts[-1]] = copy.deepcopy(value)

    def _check(self, op: str, path: str) -> None:
        if not self.available:
            raise RemoteUnavailable("in-memory store offline", path=path)
        if path in self.failing_paths:
            raise PersistenceFailed(f"injected failure on {path}", operation=op, path=path)
        self.ops.append((op, path))

    def _notify(self, parts: list[str]) -> None:
        for sub in list(self._subs):
            sub_parts = _parts(sub.path)
            if _related(sub_parts, parts):
                changed = "/".join(parts[len(sub_parts):])
                sub.callback(copy.deepcopy(self._get(sub_parts)), changed)

    # --- RemoteStore ---

    async def read(self, path: str) -> Any:
        self._check("read", path)
        return copy.deepcopy(self._get(_parts(path)))

    async def write(self, path: str, value: Any) -> None:
        self._check("write", path)
        parts = _parts(path)
        self._set(parts, value)
        self._notify(parts)

    async def append(self, path: str, record: dict[str, Any]) -> str:
        self._check("append", path)
        self._push_counter += 1
        key = f"-M{self._push_counter:010d}"
        parts = _parts(path) + [key]
        self._set(parts, record)
        self._notify(parts)
        return key

    async def range_query(
        self, path: str, order_by: str, limit: Optional[int] = None
    ) -> list[tuple[str, dict[str, Any]]]:
        self._check("range_query", path)
        children = self._get(_parts(path))
        if not isinstance(children, dict):
            return []
        rows = [
            (k, copy.deepcopy(v)) for k, v in children.items()
            if isinstance(v, dict) and order_by in v
        ]
        rows.sort(key=lambda kv: (kv[1][order_by], kv[0]))
        if limit is not None:
            rows = rows[-limit:] if limit > 0 else []
        return rows

    async def delete(self, path: str) -> None:
        self._check("delete", path)
        parts = _parts(path)
        self._set(parts, None)
        self._notify(parts)

    async def subscribe(self, path: str, callback: ChangeCallback) -> MemorySubscription:
        self._check("subscribe", path)
        sub = MemorySubscription(self, path, callback)
        self._subs.append(sub)
        callback(copy.deepcopy(self._get(_parts(path))), "")
        return sub

    async def close(self) -> None:
        for sub in list(self._subs):
            sub.cancel()

    # --- test conveniences ---

    def dump(self, path: str = "") -> Any:
        return copy.deepcopy(self._get(_parts(path)))

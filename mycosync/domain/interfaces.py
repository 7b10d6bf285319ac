from __future__ import annotations
from typing import Any, Callable, Optional, Protocol, runtime_checkable
from .models import Identity

# Invoked with the full current value at the subscribed path and the path of
# the change relative to it ("" when the whole value was replaced).
ChangeCallback = Callable[[Any, str], None]
AuthListener = Callable[[Optional[Identity]], None]


@runtime_checkable
class Subscription(Protocol):
    path: str

    def cancel(self) -> None:
        ...


@runtime_checkable
class RemoteStore(Protocol):
    async def read(self, path: str) -> Any:
        ...

    async def write(self, path: str, value: Any) -> None:
        ...

    async def append(self, path: str, record: dict[str, Any]) -> str:
        ...

    async def range_query(
        self, path: str, order_by: str, limit: Optional[int] = None
    ) -> list[tuple[str, dict[str, Any]]]:
        """Children of ``path`` as (key, record), ascending by ``order_by``.

        With ``limit`` only the last ``limit`` children are returned.
        """
        ...

    async def delete(self, path: str) -> None:
        ...

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    @property
    def current(self) -> Optional[Identity]:
        ...

    async def sign_in(self, email: str, password: str) -> Identity:
        ...

    async def sign_out(self) -> None:
        ...

    def add_listener(self, listener: AuthListener) -> None:
        ...


@runtime_checkable
class SampleSource(Protocol):
    kind: str  # "live" | "simulated"

    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...

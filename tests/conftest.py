# tests/conftest.py
"""Shared pytest fixtures for the telemetry engine tests.

Components are tested with real collaborators wherever possible: the
in-memory store stands in for Firebase and a fake identity provider stands
in for Firebase Authentication.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from mycosync.core.errors import AuthenticationFailed
from mycosync.domain.actuators import ActuatorState
from mycosync.domain.alerts import AlertEngine
from mycosync.domain.authority import ControlAuthority
from mycosync.domain.models import Identity
from mycosync.domain.state import EngineState
from mycosync.drivers.memory_store import InMemoryStore
from mycosync.services.reconciler import SyncReconciler

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "correct-horse"


def epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


# ----------------------------------------------------------------
# Doubles
# ----------------------------------------------------------------
class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeIdentityProvider:
    """Identity provider with a fixed account table."""

    def __init__(self, accounts: Optional[dict] = None) -> None:
        self.accounts = accounts if accounts is not None else {ADMIN_EMAIL: ADMIN_PASSWORD}
        self._listeners = []
        self._current: Optional[Identity] = None
        self.sign_in_calls = 0

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    async def sign_in(self, email: str, password: str) -> Identity:
        self.sign_in_calls += 1
        if self.accounts.get(email) != password:
            raise AuthenticationFailed("INVALID_LOGIN_CREDENTIALS", code="INVALID_LOGIN_CREDENTIALS")
        identity = Identity(uid="uid-admin", email=email, id_token="token-admin")
        self._set(identity)
        return identity

    async def sign_out(self) -> None:
        self._set(None)

    def add_listener(self, listener) -> None:
        self._listeners.append(listener)

    def revoke(self) -> None:
        """Provider-side session end (token expiry, remote sign-out)."""
        self._set(None)

    def _set(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for listener in self._listeners:
            listener(identity)


# ----------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------
@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def identity() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def history_rows() -> dict:
    """Three history records, one hour apart, deliberately stored out of key order."""
    return {
        "-Mk3": {"Temperature": 25.0, "Humidity": 84.0, "CO2": 950, "timestamp": epoch_ms(T0 - timedelta(hours=1))},
        "-Mk1": {"Temperature": 23.0, "Humidity": 82.0, "CO2": 850, "timestamp": epoch_ms(T0 - timedelta(hours=3))},
        "-Mk2": {"Temperature": 24.0, "Humidity": 83.0, "CO2": 900, "timestamp": epoch_ms(T0 - timedelta(hours=2))},
    }


@pytest.fixture
def remote_data(history_rows) -> dict:
    return {
        "Sensors": {
            "Temperature": 24.5,
            "Humidity": 85.0,
            "CO2": 910,
            "history": history_rows,
        },
        "Actuators": {
            "ventilation": False,
            "heating": False,
            "humidifier": True,
            "lighting": False,
            "auto": True,
        },
        "Ranges": {"tempMin": 22, "tempMax": 27, "humMin": 80, "humMax": 90, "humExtractorMin": 88},
        "LightSchedule": {
            "mode": "schedule",
            "schedule": {"startHour": 7, "startMin": 30, "endHour": 19, "endMin": 0},
            "cycle": {"onHours": 12, "offHours": 12},
        },
    }


@pytest.fixture
def store(remote_data) -> InMemoryStore:
    return InMemoryStore(remote_data)


@pytest.fixture
def alerts(clock) -> AlertEngine:
    return AlertEngine(capacity=5, ttl_s=10.0, clock=clock)


@pytest.fixture
def engine_state() -> EngineState:
    return EngineState.create(live_ceiling=1440, optimistic_timeout_s=15.0)


@pytest.fixture
def authority(engine_state, alerts, identity, store) -> ControlAuthority:
    return ControlAuthority(engine_state.actuators, alerts, identity, store)


@pytest.fixture
def reconciler(engine_state, alerts, authority) -> SyncReconciler:
    return SyncReconciler(engine_state, alerts, authority)


@pytest.fixture
def actuator_state() -> ActuatorState:
    return ActuatorState(timeout_s=15.0)

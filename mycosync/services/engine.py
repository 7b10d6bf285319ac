from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from ..core.config import settings
from ..core.errors import (
    AuthenticationFailed,
    AuthorizationDenied,
    DenialReason,
    PersistenceFailed,
    RemoteUnavailable,
    ValidationFailed,
)
from ..core.timeutil import now_utc
from ..domain.actuators import ActuatorValue
from ..domain.alerts import AlertEngine
from ..domain.authority import ControlAuthority
from ..domain.interfaces import IdentityProvider, RemoteStore, SampleSource, Subscription
from ..domain.models import (
    Alert,
    Channel,
    ControlMode,
    ControlRanges,
    DailyWindow,
    Identity,
    LightCycle,
    LightMode,
    LightSchedule,
    Sample,
    Severity,
)
from ..domain.state import EngineState
from ..domain.validation import validate_light_schedule, validate_ranges
from ..drivers.sensors_sim import SimulatedClimate
from ..storage.export import export_history
from .reconciler import LIGHT_SCHEDULE_PATH, RANGES_PATH, SENSORS_PATH, SyncReconciler
from .retention import HistoryRetentionJob
from .simulation import SimulatedSource

logger = logging.getLogger(__name__)

_DENIAL_MESSAGES = {
    DenialReason.NOT_AUTHENTICATED: "Admin login required",
    DenialReason.WRONG_MODE: "Switch to manual mode to control actuators",
}


class LiveSource:
    """RemoteStore-driven sample source."""

    kind = "live"

    def __init__(self, store: RemoteStore, reconciler: SyncReconciler, history_limit: int) -> None:
        self._store = store
        self._reconciler = reconciler
        self._history_limit = history_limit
        self._subs: list[Subscription] = []

    async def start(self) -> None:
        self._subs = await self._reconciler.start(self._store, self._history_limit)

    async def stop(self) -> None:
        for sub in self._subs:
            sub.cancel()
        self._subs = []


class TelemetryEngine:
    """Single owner of the engine state and entry point for callers.

    The sample source is picked once in start(): live when the remote store
    answers, simulated otherwise. It is never switched afterwards.
    """

    def __init__(
        self,
        store: Optional[RemoteStore] = None,
        identity: Optional[IdentityProvider] = None,
        alerts: Optional[AlertEngine] = None,
        climate: Optional[SimulatedClimate] = None,
    ) -> None:
        self.alerts = alerts or AlertEngine(
            capacity=settings.alert_backlog_size, ttl_s=settings.alert_ttl_seconds
        )
        self.state = EngineState.create(settings.live_ceiling, settings.optimistic_timeout_seconds)
        self.authority = ControlAuthority(self.state.actuators, self.alerts, identity, store)
        self.reconciler = SyncReconciler(
            self.state, self.alerts, self.authority, on_refresh=self._notify_listeners
        )
        self._store = store
        self._climate = climate or SimulatedClimate()
        self._listeners: list[Callable[[], None]] = []
        self.source: Optional[SampleSource] = None
        self.retention: Optional[HistoryRetentionJob] = None

    # --- lifecycle ---

    async def start(self) -> None:
        self.source = await self._select_source()
        self.state.source_kind = self.source.kind
        await self.source.start()

        if self.source.kind == "live" and self._store is not None:
            self.retention = HistoryRetentionJob(
                self._store,
                self.alerts,
                interval_s=settings.history_interval_seconds,
                max_records=settings.history_max_records,
            )
            await self.retention.start()
        logger.info("Engine started (source=%s)", self.source.kind)

    async def _select_source(self) -> SampleSource:
        if self._store is not None:
            try:
                await self._store.read(SENSORS_PATH)
                return LiveSource(self._store, self.reconciler, settings.history_max_records)
            except (RemoteUnavailable, PersistenceFailed) as e:
                logger.warning("Remote store unreachable at startup: %s", e)

        self.alerts.notify("Remote store unavailable: showing simulated data", Severity.WARNING)
        self._store = None
        self.authority.attach_store(None)
        self.state.set_live_ceiling(settings.simulated_ceiling)
        return SimulatedSource(self.reconciler, self.state, self._climate, settings.sample_seconds)

    async def stop(self) -> None:
        if self.retention:
            await self.retention.stop()
            self.retention = None
        if self.source:
            await self.source.stop()
        logger.info("Engine stopped")

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Refresh listener raised")

    # --- user actions ---

    @contextmanager
    def _reported(self, action: str) -> Iterator[None]:
        try:
            yield
        except AuthorizationDenied as e:
            self.alerts.notify(_DENIAL_MESSAGES[e.reason], Severity.WARNING)
            raise
        except AuthenticationFailed as e:
            self.alerts.notify(f"Login failed: {e.code or e.message}", Severity.DANGER)
            raise
        except ValidationFailed as e:
            self.alerts.notify(f"Invalid {action}: " + "; ".join(e.violations), Severity.WARNING)
            raise

    async def authenticate(self, email: str, password: str) -> Identity:
        with self._reported("login"):
            identity = await self.authority.authenticate(email, password)
        self.alerts.notify("Admin session started", Severity.SUCCESS)
        return identity

    async def logout(self) -> None:
        was = self.authority.authenticated
        await self.authority.logout()
        if was:
            self.alerts.notify("Admin session closed", Severity.INFO)

    async def set_mode(self, mode: ControlMode) -> ControlMode:
        with self._reported("mode"):
            return await self.authority.set_mode(mode)

    async def command_actuator(self, name: str, value: bool) -> ActuatorValue:
        with self._reported("actuator command"):
            result = await self.authority.command_actuator(name, value)
        self._notify_listeners()
        return result

    async def toggle_actuator(self, name: str) -> ActuatorValue:
        if not self.state.actuators.has(name):
            raise ValueError(f"Unknown actuator: {name}")
        current = self.state.actuators.value(name, now_utc())
        return await self.command_actuator(name, not current)

    async def save_ranges(self, ranges: ControlRanges) -> ControlRanges:
        with self._reported("ranges"):
            self.authority.authorize_config_write("save_ranges")
            validated = validate_ranges(ranges)
        await self.authority.publish(RANGES_PATH, validated.to_remote())
        self.state.ranges = validated
        self.alerts.notify("Control ranges saved", Severity.SUCCESS)
        self._notify_listeners()
        return validated

    async def save_light_schedule(
        self,
        mode: LightMode,
        schedule: Optional[DailyWindow] = None,
        cycle: Optional[LightCycle] = None,
    ) -> LightSchedule:
        with self._reported("light schedule"):
            self.authority.authorize_config_write("save_light_schedule")
            validated = validate_light_schedule(mode, schedule, cycle)
        await self.authority.publish(LIGHT_SCHEDULE_PATH, validated.to_remote())
        self.state.light_schedule = validated
        self.alerts.notify("Light schedule saved", Severity.SUCCESS)
        self._notify_listeners()
        return validated

    # --- presentation reads ---

    def latest(self, channel: Channel) -> Sample:
        return self.state.buffers[channel].latest()

    def status(self, channel: Channel) -> str:
        return self.alerts.status(channel, self.latest(channel).value)

    def window(self, channel: Channel, n: int = 10) -> list[Sample]:
        return list(self.state.buffers[channel].window(n))

    def series(self, channel: Channel) -> list[Sample]:
        return self.state.buffers[channel].samples()

    def actuators(self) -> dict[str, bool]:
        return self.state.actuators.as_dict(now_utc())

    def active_alerts(self) -> list[Alert]:
        return self.alerts.active()

    def export(self) -> dict[str, Any]:
        return export_history(self.state.buffers)

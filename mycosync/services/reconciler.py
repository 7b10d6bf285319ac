from __future__ import annotations
import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from ..core.timeutil import now_utc
from ..domain.alerts import AlertEngine
from ..domain.authority import ACTUATORS_PATH, MODE_FIELD, ControlAuthority
from ..domain.interfaces import RemoteStore, Subscription
from ..domain.models import (
    Channel,
    ControlMode,
    ControlRanges,
    HistoryRecord,
    LightSchedule,
    Sample,
    Severity,
)
from ..domain.state import EngineState
from ..domain.validation import range_violations

logger = logging.getLogger(__name__)

SENSORS_PATH = "Sensors"
SENSOR_HISTORY_PATH = "Sensors/history"
RANGES_PATH = "Ranges"
LIGHT_SCHEDULE_PATH = "LightSchedule"
HISTORY_CHILD = "history"


class SyncReconciler:
    """Merges the one-shot history snapshot with the live update stream.

    Snapshot loads clear the buffers only while no live data has arrived, skip
    records already merged (by remote key) and finish with the single stable
    sort. Live updates append at the tail stamped with receipt time and evict
    from the head. Each ingestion refreshes listeners and runs the alert rules
    on the values just observed.
    """

    def __init__(
        self,
        state: EngineState,
        alerts: AlertEngine,
        authority: ControlAuthority,
        on_refresh: Optional[Callable[[], None]] = None,
    ) -> None:
        self.state = state
        self._alerts = alerts
        self._authority = authority
        self._on_refresh = on_refresh or (lambda: None)
        self._actuators_synced = False

    # --- sensor data ---

    def ingest_snapshot(self, records: Iterable[tuple[str, Mapping[str, Any]]]) -> int:
        if not self.state.has_live_data:
            for buf in self.state.buffers.values():
                buf.clear()
            self.state.ingested_keys.clear()

        staged: dict[Channel, list[Sample]] = {ch: [] for ch in Channel}
        inserted = 0
        for key, raw in records:
            if key in self.state.ingested_keys:
                continue
            try:
                rec = HistoryRecord.from_remote(key, raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed history record %s: %s", key, e)
                continue
            for ch, value in rec.values.items():
                staged[ch].append(Sample(timestamp=rec.timestamp, value=value))
            self.state.ingested_keys.add(key)
            inserted += 1

        for ch, buf in self.state.buffers.items():
            buf.extend(staged[ch])
            buf.sort()
            buf.evict_if_over_capacity()

        logger.info("Snapshot merged: %d new records (live data already present: %s)",
                    inserted, self.state.has_live_data)
        self._after_ingest(self.state.latest_values())
        return inserted

    def ingest_sensor_values(
        self, values: Mapping[Channel, float], received_at: Optional[datetime] = None
    ) -> None:
        if not values:
            return
        ts = received_at or now_utc()
        for ch, value in values.items():
            buf = self.state.buffers[ch]
            buf.append(Sample(timestamp=ts, value=float(value)))
            buf.evict_if_over_capacity()
        self.state.has_live_data = True
        self.state.last_update = ts

        observed = self.state.latest_values()
        observed.update(values)
        self._after_ingest(observed)

    def _after_ingest(self, observed: Mapping[Channel, float]) -> None:
        self._notify_refresh()
        self._alerts.evaluate(
            observed[Channel.TEMPERATURE],
            observed[Channel.HUMIDITY],
            observed[Channel.CO2],
        )

    def _notify_refresh(self) -> None:
        try:
            self._on_refresh()
        except Exception:
            logger.exception("Refresh listener raised")

    # --- subscription callbacks ---

    def on_sensors(self, data: Any, changed: str = "") -> None:
        if changed.split("/", 1)[0] == HISTORY_CHILD:
            return
        if not isinstance(data, dict):
            return
        values: dict[Channel, float] = {}
        for ch in Channel:
            raw = data.get(ch.remote_field)
            if raw is None:
                continue
            try:
                values[ch] = float(raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring non-numeric %s reading: %r", ch.remote_field, raw)
        self.ingest_sensor_values(values)

    def on_actuators(self, data: Any, changed: str = "") -> None:
        if changed.split("/", 1)[0] == HISTORY_CHILD or not isinstance(data, dict):
            return
        baseline = not self._actuators_synced
        self._actuators_synced = True

        for name in self.state.actuators.confirm_many(data):
            if not baseline:
                self._alerts.evaluate_actuator(name, self.state.actuators.value(name, now_utc()))

        if MODE_FIELD in data:
            mode = ControlMode.AUTO if data[MODE_FIELD] else ControlMode.MANUAL
            if self._authority.confirm_mode(mode) and not baseline:
                self._alerts.evaluate_mode(mode)
        self._notify_refresh()

    def on_ranges(self, data: Any, changed: str = "") -> None:
        if not isinstance(data, dict):
            return
        try:
            ranges = ControlRanges.from_remote(data)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed ranges: %s", e)
            return
        problems = range_violations(ranges)
        if problems:
            logger.warning("Remote ranges violate constraints: %s", "; ".join(problems))
        self.state.ranges = ranges
        self._notify_refresh()

    def on_light_schedule(self, data: Any, changed: str = "") -> None:
        if not isinstance(data, dict):
            return
        try:
            self.state.light_schedule = LightSchedule.from_remote(data)
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring malformed light schedule: %s", e)
            return
        self._notify_refresh()

    # --- startup ---

    async def start(self, store: RemoteStore, history_limit: int) -> list[Subscription]:
        """Subscribe, fetch the history snapshot and the current records concurrently."""
        results = await asyncio.gather(
            store.subscribe(SENSORS_PATH, self.on_sensors),
            store.subscribe(ACTUATORS_PATH, self.on_actuators),
            store.subscribe(RANGES_PATH, self.on_ranges),
            store.subscribe(LIGHT_SCHEDULE_PATH, self.on_light_schedule),
            store.range_query(SENSOR_HISTORY_PATH, "timestamp", history_limit),
            store.read(SENSORS_PATH),
            store.read(ACTUATORS_PATH),
            return_exceptions=True,
        )
        subs, (snapshot, sensors, actuators) = results[:4], results[4:]

        subscriptions: list[Subscription] = []
        for path, sub in zip(
            (SENSORS_PATH, ACTUATORS_PATH, RANGES_PATH, LIGHT_SCHEDULE_PATH), subs
        ):
            if isinstance(sub, BaseException):
                self._report(f"Subscription to {path} failed", sub)
            else:
                subscriptions.append(sub)

        if isinstance(snapshot, BaseException):
            self._report("Could not load sensor history", snapshot)
        else:
            self.ingest_snapshot(snapshot)

        # The subscription usually delivered this already; only fill a gap.
        if isinstance(sensors, BaseException):
            self._report("Could not read current sensors", sensors)
        elif not self.state.has_live_data:
            self.on_sensors(sensors)

        if isinstance(actuators, BaseException):
            self._report("Could not read current actuators", actuators)
        else:
            self.on_actuators(actuators)

        return subscriptions

    def _report(self, message: str, error: BaseException) -> None:
        if not isinstance(error, Exception):
            raise error
        logger.error("%s: %s", message, error)
        self._alerts.notify(message, Severity.DANGER)

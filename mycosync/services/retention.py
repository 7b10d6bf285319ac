from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from ..core.errors import PersistenceFailed, RemoteUnavailable
from ..core.timeutil import now_utc, to_epoch_ms
from ..domain.alerts import AlertEngine
from ..domain.interfaces import RemoteStore
from ..domain.models import Channel, Severity
from .reconciler import SENSORS_PATH, SENSOR_HISTORY_PATH

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionResult:
    saved: bool
    pruned: int


class HistoryRetentionJob:
    """Every ``interval_s``: append the current readings to Sensors/history,
    then delete the oldest history records beyond ``max_records``.

    Failures are logged and alerted; the record in question is dropped and
    the next cycle runs as usual.
    """

    def __init__(
        self,
        store: RemoteStore,
        alerts: AlertEngine,
        interval_s: float,
        max_records: int,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._store = store
        self._alerts = alerts
        self._interval = interval_s
        self._max_records = max_records
        self._clock = clock

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    async def save_current(self) -> bool:
        try:
            current = await self._store.read(SENSORS_PATH)
        except (RemoteUnavailable, PersistenceFailed) as e:
            self._fail("Could not read current sensors for history", e)
            return False

        if not isinstance(current, dict):
            logger.warning("No current sensor record to persist")
            return False
        record: dict[str, Any] = {}
        for ch in Channel:
            value = current.get(ch.remote_field)
            if value is None:
                logger.warning("Current sensors missing %s; skipping history save", ch.remote_field)
                return False
            record[ch.remote_field] = value
        record["timestamp"] = to_epoch_ms(self._clock())

        try:
            key = await self._store.append(SENSOR_HISTORY_PATH, record)
        except (RemoteUnavailable, PersistenceFailed) as e:
            self._fail("Could not save sensor history", e)
            return False
        logger.debug("History record %s saved", key)
        return True

    async def cleanup(self) -> int:
        try:
            rows = await self._store.range_query(SENSOR_HISTORY_PATH, "timestamp")
        except (RemoteUnavailable, PersistenceFailed) as e:
            self._fail("Could not list sensor history", e)
            return 0

        excess = len(rows) - self._max_records
        if excess <= 0:
            return 0

        deleted = 0
        failed = 0
        for key, _ in rows[:excess]:
            try:
                await self._store.delete(f"{SENSOR_HISTORY_PATH}/{key}")
                deleted += 1
            except (RemoteUnavailable, PersistenceFailed) as e:
                logger.warning("Could not delete history record %s: %s", key, e)
                failed += 1
        if failed:
            self._alerts.notify(f"History cleanup left {failed} old records", Severity.WARNING)
        logger.info("History cleanup: deleted %d of %d excess records", deleted, excess)
        return deleted

    async def run_once(self) -> RetentionResult:
        saved = await self.save_current()
        pruned = await self.cleanup()
        return RetentionResult(saved=saved, pruned=pruned)

    def _fail(self, message: str, error: Exception) -> None:
        logger.error("%s: %s", message, error)
        self._alerts.notify(message, Severity.DANGER)

    async def start(self) -> None:
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="history_retention")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def _run(self) -> None:
        logger.info(
            "History retention started (interval=%ss max_records=%s)",
            self._interval,
            self._max_records,
        )

        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if self._stop.is_set():
                break

            try:
                await self.run_once()
            except Exception as e:
                logger.exception("History retention error: %s", e)

        logger.info("History retention stopped")

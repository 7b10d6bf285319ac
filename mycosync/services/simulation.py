from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..core.timeutil import now_utc
from ..domain.state import EngineState
from ..drivers.sensors_sim import SimulatedClimate
from .reconciler import SyncReconciler

logger = logging.getLogger(__name__)


class SimulatedSource:
    """Self-driven sample source used when the remote store is unreachable.

    Feeds the same ingestion path as live updates, one sample per channel
    every ``interval_s``.
    """

    kind = "simulated"

    def __init__(
        self,
        reconciler: SyncReconciler,
        state: EngineState,
        climate: SimulatedClimate,
        interval_s: float,
    ) -> None:
        self._reconciler = reconciler
        self._state = state
        self._climate = climate
        self._interval = interval_s

        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    def seed(self) -> None:
        rows = self._climate.seed_history(now_utc(), hours=self._state.live_ceiling())
        self._reconciler.ingest_snapshot((f"sim-{i}", row) for i, row in enumerate(rows))

    def tick(self) -> None:
        now = now_utc()
        values = self._climate.step(
            self._state.latest_values(),
            self._state.actuators.as_dict(now),
        )
        self._reconciler.ingest_sensor_values(values, received_at=now)

    async def start(self) -> None:
        if not any(len(b) for b in self._state.buffers.values()):
            self.seed()
        self._stop.clear()
        self._task = asyncio.create_task(self._run(), name="simulated_source")

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def _run(self) -> None:
        logger.info("Simulated source started (interval=%ss)", self._interval)

        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                pass
            if self._stop.is_set():
                break

            try:
                self.tick()
            except Exception as e:
                logger.exception("Simulation tick error: %s", e)

        logger.info("Simulated source stopped")

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .actuators import ActuatorState
from .buffer import TimeSeriesBuffer
from .models import Channel, ControlRanges, LightSchedule


@dataclass
class EngineState:
    buffers: dict[Channel, TimeSeriesBuffer]
    actuators: ActuatorState
    ranges: ControlRanges = field(default_factory=ControlRanges)
    light_schedule: LightSchedule = field(default_factory=LightSchedule)
    # Set by the first live ingestion; snapshot loads only clear buffers while False.
    has_live_data: bool = False
    # Remote keys of history records already merged into the buffers.
    ingested_keys: set[str] = field(default_factory=set)
    source_kind: str = "live"
    last_update: Optional[datetime] = None

    @classmethod
    def create(cls, live_ceiling: int, optimistic_timeout_s: float) -> "EngineState":
        return cls(
            buffers={ch: TimeSeriesBuffer(ch, live_ceiling) for ch in Channel},
            actuators=ActuatorState(optimistic_timeout_s),
        )

    def set_live_ceiling(self, ceiling: int) -> None:
        for buf in self.buffers.values():
            buf.live_ceiling = ceiling
            buf.evict_if_over_capacity()

    def latest_values(self) -> dict[Channel, float]:
        return {ch: buf.latest().value for ch, buf in self.buffers.items()}

    def live_ceiling(self) -> int:
        return min(buf.live_ceiling for buf in self.buffers.values())

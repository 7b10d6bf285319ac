from __future__ import annotations
from datetime import datetime
from typing import Any, Mapping

from ..domain.buffer import TimeSeriesBuffer
from ..domain.models import Channel


def export_history(buffers: Mapping[Channel, TimeSeriesBuffer]) -> dict[str, Any]:
    """Full in-memory history as ``{channel: [{time, value}, ...]}``."""
    return {
        ch.value: [{"time": s.timestamp.isoformat(), "value": s.value} for s in buf]
        for ch, buf in buffers.items()
    }


def export_filename(now: datetime) -> str:
    return f"mycosync_data_{now.date().isoformat()}.json"

from __future__ import annotations
import math
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Mapping, Optional

from ..domain.models import Channel


@dataclass(frozen=True)
class ActuatorEffect:
    channel: Channel
    delta: float


@dataclass
class WalkConfig:
    # Full width of the uniform step per tick: value += (rand - 0.5) * width
    step_width: dict[Channel, float] = field(default_factory=lambda: {
        Channel.TEMPERATURE: 2.0,
        Channel.HUMIDITY: 3.0,
        Channel.CO2: 50.0,
    })
    effects: dict[str, ActuatorEffect] = field(default_factory=lambda: {
        "heating": ActuatorEffect(Channel.TEMPERATURE, 0.5),
        "humidifier": ActuatorEffect(Channel.HUMIDITY, 2.0),
        "ventilation": ActuatorEffect(Channel.CO2, -30.0),
    })
    bounds: dict[Channel, tuple[float, float]] = field(default_factory=lambda: {
        Channel.TEMPERATURE: (15.0, 35.0),
        Channel.HUMIDITY: (50.0, 95.0),
        Channel.CO2: (300.0, 2000.0),
    })


class SimulatedClimate:
    """Bounded random walk standing in for the grow room when offline."""

    sensor_id = "climate_sim"

    def __init__(self, cfg: Optional[WalkConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.cfg = cfg or WalkConfig()
        self._rng = rng or random.Random()

    def clamp(self, channel: Channel, value: float) -> float:
        lo, hi = self.cfg.bounds[channel]
        return max(lo, min(hi, value))

    def step(
        self,
        previous: Mapping[Channel, float],
        actuators: Mapping[str, bool],
    ) -> dict[Channel, float]:
        out = {
            ch: previous[ch] + (self._rng.random() - 0.5) * self.cfg.step_width[ch]
            for ch in Channel
        }
        for name, effect in self.cfg.effects.items():
            if actuators.get(name):
                out[effect.channel] += effect.delta
        return {ch: self.clamp(ch, v) for ch, v in out.items()}

    def seed_history(self, now: datetime, hours: int = 24) -> list[dict[str, float]]:
        """Hourly records for the past day, shaped like Sensors/history rows."""
        rows = []
        for i in range(hours - 1, -1, -1):
            ts = now - timedelta(hours=i)
            wave = math.sin(i / hours * math.pi)
            rows.append({
                Channel.TEMPERATURE.remote_field: self.clamp(
                    Channel.TEMPERATURE, 20 + self._rng.random() * 8 + wave * 3),
                Channel.HUMIDITY.remote_field: self.clamp(
                    Channel.HUMIDITY, 75 + self._rng.random() * 15 + wave * 5),
                Channel.CO2.remote_field: self.clamp(
                    Channel.CO2, 600 + self._rng.random() * 400 + wave * 200),
                "timestamp": ts.timestamp() * 1000.0,
            })
        return rows

from __future__ import annotations
import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import Alert, Channel, ChannelRange, ControlMode, Severity
from ..core.config import settings
from ..core.timeutil import now_utc

logger = logging.getLogger(__name__)


def default_channel_ranges() -> dict[Channel, ChannelRange]:
    return {
        Channel.TEMPERATURE: ChannelRange(
            min=settings.temperature_min,
            max=settings.temperature_max,
            optimal=settings.temperature_optimal,
            unit="°C",
            label="Temperature",
        ),
        Channel.HUMIDITY: ChannelRange(
            min=settings.humidity_min,
            max=settings.humidity_max,
            optimal=settings.humidity_optimal,
            unit="%",
            label="Humidity",
        ),
        Channel.CO2: ChannelRange(
            min=settings.co2_min,
            max=settings.co2_max,
            optimal=settings.co2_optimal,
            unit=" ppm",
            label="CO2 level",
            decimals=0,
            alert_low=settings.co2_alert_low,
        ),
    }


_LOG_LEVEL = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.DANGER: logging.ERROR,
}


class AlertEngine:
    """Derives alerts from samples and events and keeps the visible backlog.

    The backlog holds at most ``capacity`` alerts, newest first. Independently
    of that cap every alert expires ``ttl_s`` seconds after creation: a timer
    is armed when an event loop is running, and expired entries are also
    pruned whenever the backlog is read.

    Alert bands here are per-channel display thresholds. They are not the
    admin ControlRanges, which govern the external automatic controller.
    """

    def __init__(
        self,
        ranges: Optional[dict[Channel, ChannelRange]] = None,
        capacity: int = 5,
        ttl_s: float = 10.0,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.ranges = ranges or default_channel_ranges()
        self._capacity = capacity
        self._ttl = timedelta(seconds=ttl_s)
        self._clock = clock
        self._backlog: deque[Alert] = deque()

    # --- backlog ---

    def add(self, message: str, severity: Severity) -> Alert:
        alert = Alert(message=message, severity=severity, created_at=self._clock())
        self._backlog.appendleft(alert)
        while len(self._backlog) > self._capacity:
            self._backlog.pop()
        logger.log(_LOG_LEVEL[severity], "ALERT [%s] %s", severity.value, message)
        self._arm_expiry(alert)
        return alert

    def _arm_expiry(self, alert: Alert) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_later(self._ttl.total_seconds(), self._discard, alert)

    def _discard(self, alert: Alert) -> None:
        for i, a in enumerate(self._backlog):
            if a is alert:
                del self._backlog[i]
                return

    def _prune(self) -> None:
        cutoff = self._clock() - self._ttl
        self._backlog = deque(a for a in self._backlog if a.created_at > cutoff)

    def active(self) -> list[Alert]:
        self._prune()
        return list(self._backlog)

    def clear(self) -> None:
        self._backlog.clear()

    # --- rules ---

    def status(self, channel: Channel, value: float) -> str:
        r = self.ranges[channel]
        if value < r.min:
            return "low"
        if value > r.max:
            return "high"
        return "normal"

    def evaluate(self, temp: float, hum: float, co2: float) -> list[Alert]:
        out: list[Alert] = []
        for channel, value in (
            (Channel.TEMPERATURE, temp),
            (Channel.HUMIDITY, hum),
            (Channel.CO2, co2),
        ):
            r = self.ranges[channel]
            status = self.status(channel, value)
            if status == "low" and r.alert_low:
                out.append(self.add(f"{r.label} low: {r.format(value)}", Severity.WARNING))
            elif status == "high":
                out.append(self.add(f"{r.label} high: {r.format(value)}", Severity.DANGER))
        return out

    def evaluate_actuator(self, name: str, value: bool) -> Alert:
        if value:
            return self.add(f"Actuator {name} activated", Severity.SUCCESS)
        return self.add(f"Actuator {name} deactivated", Severity.INFO)

    def evaluate_mode(self, mode: ControlMode) -> Alert:
        return self.add(f"Control mode set to {mode.value}", Severity.INFO)

    def notify(self, message: str, severity: Severity = Severity.WARNING) -> Alert:
        return self.add(message, severity)

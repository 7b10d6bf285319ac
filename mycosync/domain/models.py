from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional


class Channel(str, Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    CO2 = "co2"

    @property
    def remote_field(self) -> str:
        return _REMOTE_FIELDS[self]


_REMOTE_FIELDS = {
    Channel.TEMPERATURE: "Temperature",
    Channel.HUMIDITY: "Humidity",
    Channel.CO2: "CO2",
}

ACTUATORS = ("ventilation", "heating", "humidifier", "lighting")


@dataclass(frozen=True)
class Sample:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class ChannelRange:
    min: float
    max: float
    optimal: float
    unit: str
    label: str
    decimals: int = 1
    alert_low: bool = True

    def format(self, value: float) -> str:
        return f"{value:.{self.decimals}f}{self.unit}"


class ControlMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"
    SUCCESS = "success"


@dataclass(frozen=True)
class Alert:
    message: str
    severity: Severity
    created_at: datetime


@dataclass(frozen=True)
class Identity:
    uid: str
    email: str
    id_token: str
    expires_at: Optional[datetime] = None


@dataclass(frozen=True)
class HistoryRecord:
    """One row of Sensors/history, keyed by its remote push id."""
    key: str
    timestamp: datetime
    values: Mapping[Channel, float]

    @classmethod
    def from_remote(cls, key: str, data: Mapping[str, Any]) -> "HistoryRecord":
        """Parse ``{Temperature, Humidity, CO2, timestamp}``; timestamp in epoch ms.

        Raises KeyError/TypeError/ValueError on malformed records.
        """
        values = {
            ch: float(data[ch.remote_field]) for ch in Channel if data.get(ch.remote_field) is not None
        }
        return cls(
            key=key,
            timestamp=datetime.fromtimestamp(float(data["timestamp"]) / 1000.0, tz=timezone.utc),
            values=values,
        )


@dataclass(frozen=True)
class ControlRanges:
    temp_min: float = 23.0
    temp_max: float = 28.0
    hum_min: float = 80.0
    hum_max: float = 90.0
    hum_extractor_min: float = 90.0

    def to_remote(self) -> dict[str, float]:
        return {
            "tempMin": self.temp_min,
            "tempMax": self.temp_max,
            "humMin": self.hum_min,
            "humMax": self.hum_max,
            "humExtractorMin": self.hum_extractor_min,
        }

    @classmethod
    def from_remote(cls, data: Mapping[str, Any]) -> "ControlRanges":
        d = cls()
        return cls(
            temp_min=float(data.get("tempMin", d.temp_min)),
            temp_max=float(data.get("tempMax", d.temp_max)),
            hum_min=float(data.get("humMin", d.hum_min)),
            hum_max=float(data.get("humMax", d.hum_max)),
            hum_extractor_min=float(data.get("humExtractorMin", d.hum_extractor_min)),
        )


class LightMode(str, Enum):
    MANUAL = "manual"
    SCHEDULE = "schedule"
    CYCLE = "cycle"


@dataclass(frozen=True)
class DailyWindow:
    start_hour: int = 8
    start_min: int = 0
    end_hour: int = 20
    end_min: int = 0

    @property
    def start_minutes(self) -> int:
        return self.start_hour * 60 + self.start_min

    @property
    def end_minutes(self) -> int:
        return self.end_hour * 60 + self.end_min


@dataclass(frozen=True)
class LightCycle:
    on_hours: float = 12.0
    off_hours: float = 12.0


@dataclass(frozen=True)
class LightSchedule:
    mode: LightMode = LightMode.MANUAL
    schedule: DailyWindow = field(default_factory=DailyWindow)
    cycle: LightCycle = field(default_factory=LightCycle)

    def to_remote(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "schedule": {
                "startHour": self.schedule.start_hour,
                "startMin": self.schedule.start_min,
                "endHour": self.schedule.end_hour,
                "endMin": self.schedule.end_min,
            },
            "cycle": {
                "onHours": self.cycle.on_hours,
                "offHours": self.cycle.off_hours,
            },
        }

    @classmethod
    def from_remote(cls, data: Mapping[str, Any]) -> "LightSchedule":
        s = data.get("schedule") or {}
        c = data.get("cycle") or {}
        dw, dc = DailyWindow(), LightCycle()
        return cls(
            mode=LightMode(data.get("mode", LightMode.MANUAL.value)),
            schedule=DailyWindow(
                start_hour=int(s.get("startHour", dw.start_hour)),
                start_min=int(s.get("startMin", dw.start_min)),
                end_hour=int(s.get("endHour", dw.end_hour)),
                end_min=int(s.get("endMin", dw.end_min)),
            ),
            cycle=LightCycle(
                on_hours=float(c.get("onHours", dc.on_hours)),
                off_hours=float(c.get("offHours", dc.off_hours)),
            ),
        )

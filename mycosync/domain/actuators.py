from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from .models import ACTUATORS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActuatorValue:
    value: bool
    confirmed: bool  # False = optimistic local command awaiting the remote echo
    issued_at: Optional[datetime] = None


class ActuatorState:
    """Per-actuator booleans with optimistic/confirmed tracking.

    Remote updates always win. A local command is provisional until the
    remote confirms it or the timeout passes, after which the last confirmed
    value is reported again.
    """

    def __init__(self, timeout_s: float, names: tuple[str, ...] = ACTUATORS) -> None:
        self._timeout = timedelta(seconds=timeout_s)
        self._confirmed: dict[str, bool] = {n: False for n in names}
        self._current: dict[str, ActuatorValue] = {
            n: ActuatorValue(value=False, confirmed=True) for n in names
        }

    def names(self) -> tuple[str, ...]:
        return tuple(self._current)

    def has(self, name: str) -> bool:
        return name in self._current

    def confirm(self, name: str, value: bool) -> bool:
        """Apply an authoritative remote value.

        Returns True if the visible value changed, so the echo of a local
        command that already shows optimistically does not count as a change.
        """
        previous = self._current[name].value
        self._confirmed[name] = bool(value)
        self._current[name] = ActuatorValue(value=bool(value), confirmed=True)
        return previous != bool(value)

    def apply_optimistic(self, name: str, value: bool, now: datetime) -> None:
        self._current[name] = ActuatorValue(value=bool(value), confirmed=False, issued_at=now)

    def revert(self, name: str) -> None:
        self._current[name] = ActuatorValue(value=self._confirmed[name], confirmed=True)

    def entry(self, name: str, now: datetime) -> ActuatorValue:
        cur = self._current[name]
        if not cur.confirmed and cur.issued_at is not None and now - cur.issued_at >= self._timeout:
            logger.warning("Optimistic %s=%s not confirmed in time, reverting", name, cur.value)
            self.revert(name)
            cur = self._current[name]
        return cur

    def value(self, name: str, now: datetime) -> bool:
        return self.entry(name, now).value

    def as_dict(self, now: datetime) -> dict[str, bool]:
        return {n: self.value(n, now) for n in self._current}

    def pending(self, now: datetime) -> list[str]:
        return [n for n in self._current if not self.entry(n, now).confirmed]

    def confirm_many(self, data: Mapping[str, object]) -> list[str]:
        changed = []
        for name in self._current:
            if name in data and self.confirm(name, bool(data[name])):
                changed.append(name)
        return changed

from __future__ import annotations
from typing import Optional

from .models import ControlRanges, DailyWindow, LightCycle, LightMode, LightSchedule
from ..core.errors import ValidationFailed

TEMP_FLOOR, TEMP_CEIL = 15.0, 35.0
HUM_FLOOR, HUM_CEIL = 50.0, 95.0
EXTRACTOR_MIN, EXTRACTOR_MAX = 80.0, 95.0
CYCLE_MIN_HOURS, CYCLE_MAX_HOURS = 1.0, 24.0
CYCLE_MAX_PERIOD = 48.0


def range_violations(r: ControlRanges) -> list[str]:
    errors: list[str] = []
    if r.temp_min >= r.temp_max:
        errors.append("tempMin must be less than tempMax")
    if r.hum_min >= r.hum_max:
        errors.append("humMin must be less than humMax")
    if r.temp_min < TEMP_FLOOR or r.temp_max > TEMP_CEIL:
        errors.append(f"temperature range must stay within {TEMP_FLOOR:g}-{TEMP_CEIL:g} °C")
    if r.hum_min < HUM_FLOOR or r.hum_max > HUM_CEIL:
        errors.append(f"humidity range must stay within {HUM_FLOOR:g}-{HUM_CEIL:g} %")
    if not EXTRACTOR_MIN <= r.hum_extractor_min <= EXTRACTOR_MAX:
        errors.append(
            f"humExtractorMin must be between {EXTRACTOR_MIN:g} and {EXTRACTOR_MAX:g} %"
        )
    return errors


def validate_ranges(r: ControlRanges) -> ControlRanges:
    errors = range_violations(r)
    if errors:
        raise ValidationFailed(errors)
    return r


def _time_of_day_violations(w: DailyWindow) -> list[str]:
    errors = []
    for name, value, upper in (
        ("startHour", w.start_hour, 23),
        ("startMin", w.start_min, 59),
        ("endHour", w.end_hour, 23),
        ("endMin", w.end_min, 59),
    ):
        if not 0 <= value <= upper:
            errors.append(f"{name} must be between 0 and {upper}")
    return errors


def validate_light_schedule(
    mode: LightMode,
    schedule: Optional[DailyWindow] = None,
    cycle: Optional[LightCycle] = None,
) -> LightSchedule:
    """Validate a lighting configuration and build the struct to persist.

    A start later than the end is an overnight window and is accepted; only
    identical start and end times are rejected.
    """
    mode = LightMode(mode)
    schedule = schedule or DailyWindow()
    cycle = cycle or LightCycle()
    errors: list[str] = []

    if mode is LightMode.SCHEDULE:
        errors.extend(_time_of_day_violations(schedule))
        if schedule.start_minutes == schedule.end_minutes:
            errors.append("start time and end time cannot be the same")

    elif mode is LightMode.CYCLE:
        for name, hours in (("onHours", cycle.on_hours), ("offHours", cycle.off_hours)):
            if not CYCLE_MIN_HOURS <= hours <= CYCLE_MAX_HOURS:
                errors.append(
                    f"{name} must be between {CYCLE_MIN_HOURS:g} and {CYCLE_MAX_HOURS:g}"
                )
        if cycle.on_hours + cycle.off_hours > CYCLE_MAX_PERIOD:
            errors.append(f"onHours + offHours cannot exceed {CYCLE_MAX_PERIOD:g}")

    if errors:
        raise ValidationFailed(errors)
    return LightSchedule(mode=mode, schedule=schedule, cycle=cycle)

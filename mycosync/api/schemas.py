from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from typing import Literal, Optional


class LoginRequest(BaseModel):
    email: str
    password: str


class ModeRequest(BaseModel):
    mode: Literal["auto", "manual"]


class ActuatorRequest(BaseModel):
    state: Optional[bool] = None  # omitted = toggle


class RangesIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    temp_min: float = Field(alias="tempMin")
    temp_max: float = Field(alias="tempMax")
    hum_min: float = Field(alias="humMin")
    hum_max: float = Field(alias="humMax")
    hum_extractor_min: float = Field(alias="humExtractorMin")


class DailyWindowIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_hour: int = Field(alias="startHour")
    start_min: int = Field(alias="startMin")
    end_hour: int = Field(alias="endHour")
    end_min: int = Field(alias="endMin")


class LightCycleIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    on_hours: float = Field(alias="onHours")
    off_hours: float = Field(alias="offHours")


class LightScheduleIn(BaseModel):
    mode: Literal["manual", "schedule", "cycle"]
    schedule: Optional[DailyWindowIn] = None
    cycle: Optional[LightCycleIn] = None

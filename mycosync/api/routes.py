from __future__ import annotations

import logging
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ..core.config import settings
from ..core.errors import (
    AuthenticationFailed,
    AuthorizationDenied,
    MycosyncError,
    PersistenceFailed,
    ValidationFailed,
)
from ..core.timeutil import now_local, now_utc
from ..domain.models import (
    Channel,
    ControlMode,
    ControlRanges,
    DailyWindow,
    LightCycle,
    LightMode,
    Sample,
)
from ..services.engine import TelemetryEngine
from ..storage.export import export_filename
from .schemas import (
    ActuatorRequest,
    LightScheduleIn,
    LoginRequest,
    ModeRequest,
    RangesIn,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Overridden in main via app.dependency_overrides.
def get_engine() -> TelemetryEngine:
    raise RuntimeError("Engine dependency not configured")


def _raise_http(e: MycosyncError) -> NoReturn:
    if isinstance(e, AuthenticationFailed):
        raise HTTPException(status_code=401, detail=e.code or e.message)
    if isinstance(e, AuthorizationDenied):
        raise HTTPException(status_code=403, detail={"action": e.action, "reason": e.reason.value})
    if isinstance(e, ValidationFailed):
        raise HTTPException(status_code=422, detail={"violations": e.violations})
    if isinstance(e, PersistenceFailed):
        raise HTTPException(status_code=502, detail=e.message)
    raise HTTPException(status_code=503, detail=e.message)


def _sample(s: Sample) -> dict:
    return {"time": s.timestamp.isoformat(), "value": s.value}


def _channel(name: str) -> Channel:
    try:
        return Channel(name)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown channel: {name}")


@router.get("/live")
async def get_live(engine: TelemetryEngine = Depends(get_engine)):
    return {
        "app": settings.app_name,
        "source": engine.state.source_kind,
        "now_local": now_local().isoformat(),
        "last_update": engine.state.last_update.isoformat() if engine.state.last_update else None,
        "sensors": {
            ch.value: {**_sample(engine.latest(ch)), "status": engine.status(ch)}
            for ch in Channel
        },
        "actuators": engine.actuators(),
        "pending_actuators": engine.state.actuators.pending(now_utc()),
        "mode": engine.authority.mode.value,
        "authenticated": engine.authority.authenticated,
    }


@router.get("/series/{channel}")
async def get_series(channel: str, engine: TelemetryEngine = Depends(get_engine)):
    ch = _channel(channel)
    return {"channel": ch.value, "samples": [_sample(s) for s in engine.series(ch)]}


@router.get("/window/{channel}")
async def get_window(
    channel: str,
    n: int = Query(default=10, ge=1, le=1440),
    engine: TelemetryEngine = Depends(get_engine),
):
    ch = _channel(channel)
    return {"channel": ch.value, "samples": [_sample(s) for s in engine.window(ch, n)]}


@router.get("/alerts")
async def get_alerts(engine: TelemetryEngine = Depends(get_engine)):
    return {
        "alerts": [
            {"message": a.message, "severity": a.severity.value, "created_at": a.created_at.isoformat()}
            for a in engine.active_alerts()
        ]
    }


@router.get("/export")
async def export(engine: TelemetryEngine = Depends(get_engine)):
    return JSONResponse(
        content=engine.export(),
        headers={"Content-Disposition": f'attachment; filename="{export_filename(now_local())}"'},
    )


# --- session ---

@router.post("/auth/login")
async def login(req: LoginRequest, engine: TelemetryEngine = Depends(get_engine)):
    try:
        identity = await engine.authenticate(req.email, req.password)
    except MycosyncError as e:
        _raise_http(e)
    return {"ok": True, "email": identity.email}


@router.post("/auth/logout")
async def logout(engine: TelemetryEngine = Depends(get_engine)):
    await engine.logout()
    return {"ok": True, "authenticated": False}


# --- commands ---

@router.post("/mode")
async def set_mode(req: ModeRequest, engine: TelemetryEngine = Depends(get_engine)):
    try:
        mode = await engine.set_mode(ControlMode(req.mode))
    except MycosyncError as e:
        _raise_http(e)
    return {"ok": True, "mode": mode.value}


@router.post("/actuators/{name}")
async def command_actuator(
    name: str,
    req: ActuatorRequest,
    engine: TelemetryEngine = Depends(get_engine),
):
    if not engine.state.actuators.has(name):
        raise HTTPException(status_code=404, detail=f"Unknown actuator: {name}")
    try:
        if req.state is None:
            result = await engine.toggle_actuator(name)
        else:
            result = await engine.command_actuator(name, req.state)
    except MycosyncError as e:
        _raise_http(e)
    return {"ok": True, "name": name, "state": result.value, "confirmed": result.confirmed}


# --- configuration ---

@router.get("/ranges")
async def get_ranges(engine: TelemetryEngine = Depends(get_engine)):
    return engine.state.ranges.to_remote()


@router.put("/ranges")
async def put_ranges(req: RangesIn, engine: TelemetryEngine = Depends(get_engine)):
    try:
        saved = await engine.save_ranges(ControlRanges(**req.model_dump()))
    except MycosyncError as e:
        _raise_http(e)
    return {"ok": True, "ranges": saved.to_remote()}


@router.get("/light-schedule")
async def get_light_schedule(engine: TelemetryEngine = Depends(get_engine)):
    return engine.state.light_schedule.to_remote()


@router.put("/light-schedule")
async def put_light_schedule(req: LightScheduleIn, engine: TelemetryEngine = Depends(get_engine)):
    schedule = DailyWindow(**req.schedule.model_dump()) if req.schedule else None
    cycle = LightCycle(**req.cycle.model_dump()) if req.cycle else None
    try:
        saved = await engine.save_light_schedule(LightMode(req.mode), schedule, cycle)
    except MycosyncError as e:
        _raise_http(e)
    return {"ok": True, "light_schedule": saved.to_remote()}

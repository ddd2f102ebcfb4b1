from datetime import timedelta

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from config import CYCLE_LENGTH_DAYS, _today_local
from db import get_db
from overrides import (
    bulk_set_therapy_pause_week,
    delete_override,
    get_schedule_state,
    list_overrides,
    set_override,
    toggle_override,
)
from schemas import OverrideIn, TherapyPauseIn, parse_day

router = APIRouter()


@router.get("/api/patients/{patient_id}/schedule")
def api_schedule(patient_id: int, start: str = "", end: str = ""):
    # Default window: one full cycle from start (today when omitted)
    start_day = parse_day(start, "start") if start else _today_local()
    end_day = parse_day(end, "end") if end else start_day + timedelta(days=CYCLE_LENGTH_DAYS - 1)
    with get_db() as conn:
        days = get_schedule_state(conn, patient_id, start_day, end_day)
    return JSONResponse({"patient_id": patient_id, "days": days})


@router.get("/api/patients/{patient_id}/overrides")
def api_overrides_list(patient_id: int, start: str = "", end: str = ""):
    with get_db() as conn:
        events = list_overrides(conn, patient_id, start or None, end or None)
    return JSONResponse({"patient_id": patient_id, "overrides": events})


@router.put("/api/patients/{patient_id}/overrides/{day}")
def api_override_set(patient_id: int, day: str, payload: OverrideIn):
    with get_db() as conn:
        event = set_override(conn, patient_id, day, payload.event_type, payload.notes)
    return JSONResponse({"ok": True, "override": event})


@router.delete("/api/patients/{patient_id}/overrides/{day}")
def api_override_delete(patient_id: int, day: str):
    with get_db() as conn:
        delete_override(conn, patient_id, day)
    return JSONResponse({"ok": True})


@router.post("/api/patients/{patient_id}/overrides/{day}/toggle")
def api_override_toggle(patient_id: int, day: str):
    with get_db() as conn:
        event = toggle_override(conn, patient_id, day)
    return JSONResponse({"ok": True, "override": event})


@router.post("/api/patients/{patient_id}/therapy-pause")
def api_therapy_pause(patient_id: int, payload: TherapyPauseIn):
    with get_db() as conn:
        summary = bulk_set_therapy_pause_week(conn, patient_id, payload.start_date, payload.cycles)
    return JSONResponse({"ok": True, **summary})

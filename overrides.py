"""Clinician calendar overrides and the per-patient schedule view."""
import logging
from datetime import date
from typing import Optional

from config import (
    CYCLE_EPOCH,
    EVENT_TYPES,
    MAX_SCHEDULE_RANGE_DAYS,
    THERAPY_PAUSE_FOLLOWING_CYCLES,
    _now_storage,
)
from cycle import date_range, resolve_day, therapy_pause_plan
from dosage_history import get_history, medication_on
from errors import CycleRangeError, NotFoundError, ValidationError
from patients import get_active_patient, get_patient
from schemas import parse_day

logger = logging.getLogger(__name__)

# Clinician click cycle on a calendar day; None means "no override".
_TOGGLE_NEXT = {None: "taken", "taken": "pause", "pause": "missed", "missed": None}


def _validate_event_type(event_type: str):
    if event_type not in EVENT_TYPES:
        raise ValidationError(
            f"Invalid event type {event_type!r}; expected one of {', '.join(EVENT_TYPES)}"
        )


def _upsert(conn, patient_id: int, day: date, event_type: str, notes: str) -> bool:
    """Write one override; returns False when the day already had this event type."""
    existing = conn.execute(
        "SELECT event_type FROM calendar_events WHERE patient_id = ? AND date = ?",
        (patient_id, day.isoformat()),
    ).fetchone()
    if existing and existing["event_type"] == event_type and not notes:
        return False
    conn.execute(
        "INSERT INTO calendar_events (patient_id, date, event_type, notes, created_at)"
        " VALUES (?, ?, ?, ?, ?)"
        " ON CONFLICT (patient_id, date) DO UPDATE SET"
        " event_type = excluded.event_type,"
        " notes = CASE WHEN excluded.notes != '' THEN excluded.notes ELSE calendar_events.notes END",
        (patient_id, day.isoformat(), event_type, notes, _now_storage()),
    )
    return True


def get_override(conn, patient_id: int, day) -> Optional[dict]:
    day = parse_day(day)
    row = conn.execute(
        "SELECT id, patient_id, date, event_type, notes FROM calendar_events"
        " WHERE patient_id = ? AND date = ?",
        (patient_id, day.isoformat()),
    ).fetchone()
    return dict(row) if row else None


def set_override(conn, patient_id: int, day, event_type: str, notes: str = "") -> dict:
    day = parse_day(day)
    _validate_event_type(event_type)
    get_active_patient(conn, patient_id)
    _upsert(conn, patient_id, day, event_type, (notes or "").strip())
    conn.commit()
    return get_override(conn, patient_id, day)


def delete_override(conn, patient_id: int, day) -> None:
    day = parse_day(day)
    get_patient(conn, patient_id)
    cur = conn.execute(
        "DELETE FROM calendar_events WHERE patient_id = ? AND date = ?",
        (patient_id, day.isoformat()),
    )
    conn.commit()
    if cur.rowcount == 0:
        raise NotFoundError(f"No override for patient {patient_id} on {day.isoformat()}")


def toggle_override(conn, patient_id: int, day) -> Optional[dict]:
    """Advance a day through taken -> pause -> missed -> (no override)."""
    day = parse_day(day)
    current = get_override(conn, patient_id, day)
    following = _TOGGLE_NEXT[current["event_type"] if current else None]
    if following is None:
        delete_override(conn, patient_id, day)
        return None
    return set_override(conn, patient_id, day, following)


def list_overrides(conn, patient_id: int, start=None, end=None) -> list:
    clauses = ["patient_id = ?"]
    params: list = [patient_id]
    if start:
        clauses.append("date >= ?")
        params.append(parse_day(start, "start").isoformat())
    if end:
        clauses.append("date <= ?")
        params.append(parse_day(end, "end").isoformat())
    rows = conn.execute(
        "SELECT id, patient_id, date, event_type, notes FROM calendar_events"
        f" WHERE {' AND '.join(clauses)} ORDER BY date",
        params,
    ).fetchall()
    return [dict(r) for r in rows]


def bulk_set_therapy_pause_week(conn, patient_id: int, start_date, cycles: Optional[int] = None) -> dict:
    """Insert a therapy-pause week and, for 21/7 drugs, regenerate the following cycles.

    Every date is an idempotent upsert, so retrying after a partial failure
    rewrites nothing that is already in place.
    """
    start = parse_day(start_date, "start_date")
    patient = get_active_patient(conn, patient_id)
    cycles = THERAPY_PAUSE_FOLLOWING_CYCLES if cycles is None else cycles
    if cycles < 0:
        raise ValidationError("cycles must not be negative")
    plan = therapy_pause_plan(patient["medication"], start, cycles)
    written = 0
    try:
        for day, event_type in plan:
            if _upsert(conn, patient_id, day, event_type, ""):
                written += 1
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    logger.info(
        "Therapy pause for patient %s from %s: %d dates planned, %d written",
        patient_id, start.isoformat(), len(plan), written,
    )
    return {
        "patient_id": patient_id,
        "start_date": start.isoformat(),
        "end_date": plan[-1][0].isoformat(),
        "planned": len(plan),
        "written": written,
        "unchanged": len(plan) - written,
    }


def validate_range(start, end) -> tuple:
    start = parse_day(start, "start")
    end = parse_day(end, "end")
    if end < start:
        raise ValidationError(f"Empty date range: end {end.isoformat()} is before start {start.isoformat()}")
    if (end - start).days + 1 > MAX_SCHEDULE_RANGE_DAYS:
        raise ValidationError(f"Date range longer than {MAX_SCHEDULE_RANGE_DAYS} days")
    if start < CYCLE_EPOCH:
        raise CycleRangeError(f"Schedule queries start on or after {CYCLE_EPOCH.isoformat()}")
    return start, end


def get_schedule_state(conn, patient_id: int, start, end) -> list:
    start, end = validate_range(start, end)
    patient = get_patient(conn, patient_id)
    history = get_history(conn, patient_id)
    overrides = {o["date"]: o for o in list_overrides(conn, patient_id, start, end)}
    return [
        resolve_day(
            medication_on(history, day, patient["medication"]),
            day,
            overrides.get(day.isoformat()),
        )
        for day in date_range(start, end)
    ]

import logging
from datetime import date
from typing import Iterable, Optional

from config import (
    ALERT_SEVERITIES,
    ALERT_TYPES,
    DIARRHEA_COUNT_THRESHOLD,
    HIGH_INTENSITY_THRESHOLD,
    _now_storage,
    _today_local,
)
from errors import NotFoundError, ValidationError
from patients import get_active_patient, get_patient
from schemas import parse_day, parse_observation

logger = logging.getLogger(__name__)

_ALERT_COLUMNS = "id, patient_id, type, message, severity, resolved, created_at, resolved_at, message_id"


def _alert_dict(row) -> dict:
    item = dict(row)
    item["resolved"] = bool(item["resolved"])
    return item


def evaluate_symptom(observation) -> Optional[tuple]:
    """Return ``(severity, message)`` for an observation that needs an alert, else None.

    At most one alert per observation; the diarrhea-frequency message wins
    when both rules match.
    """
    if not observation.present:
        return None
    columns = observation.columns()
    result = None
    intensity = columns["intensity"]
    if intensity is not None and intensity > HIGH_INTENSITY_THRESHOLD:
        result = ("high", f"Severe symptom: {observation.symptom_type} at intensity {intensity}/10")
    count = columns["count"]
    if observation.symptom_type == "diarrea" and count is not None and count >= DIARRHEA_COUNT_THRESHOLD:
        result = ("high", f"Frequent diarrhea: {count} episodes per day")
    return result


def create_alert(
    conn,
    patient_id: int,
    alert_type: str,
    message: str,
    severity: str,
    message_id: Optional[int] = None,
    commit: bool = True,
) -> dict:
    if alert_type not in ALERT_TYPES:
        raise ValidationError(f"Invalid alert type {alert_type!r}; expected one of {', '.join(ALERT_TYPES)}")
    if severity not in ALERT_SEVERITIES:
        raise ValidationError(f"Invalid severity {severity!r}; expected one of {', '.join(ALERT_SEVERITIES)}")
    cur = conn.execute(
        "INSERT INTO alerts (patient_id, type, message, severity, resolved, created_at, message_id)"
        " VALUES (?, ?, ?, ?, 0, ?, ?)",
        (patient_id, alert_type, message, severity, _now_storage(), message_id),
    )
    if commit:
        conn.commit()
    logger.info("Alert %s (%s/%s) raised for patient %s: %s", cur.lastrowid, alert_type, severity, patient_id, message)
    return get_alert(conn, cur.lastrowid)


def create_manual_alert(conn, patient_id: int, message: str, severity: str = "medium") -> dict:
    get_active_patient(conn, patient_id)
    if not message.strip():
        raise ValidationError("Alert message is required")
    return create_alert(conn, patient_id, "manual", message.strip(), severity)


def get_alert(conn, alert_id: int) -> dict:
    row = conn.execute(f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE id = ?", (alert_id,)).fetchone()
    if not row:
        raise NotFoundError(f"Alert {alert_id} not found")
    return _alert_dict(row)


def resolve_alert(conn, alert_id: int) -> dict:
    alert = get_alert(conn, alert_id)
    if alert["resolved"]:
        return alert
    conn.execute(
        "UPDATE alerts SET resolved = 1, resolved_at = ? WHERE id = ? AND resolved = 0",
        (_now_storage(), alert_id),
    )
    conn.commit()
    return get_alert(conn, alert_id)


def get_active_alerts(conn, physician_id: Optional[int] = None) -> list:
    if physician_id is None:
        rows = conn.execute(
            f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE resolved = 0 ORDER BY created_at DESC, id DESC"
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT a.id, a.patient_id, a.type, a.message, a.severity, a.resolved, a.created_at,"
            " a.resolved_at, a.message_id FROM alerts a JOIN patients p ON p.id = a.patient_id"
            " WHERE a.resolved = 0 AND p.physician_id = ?"
            " ORDER BY a.created_at DESC, a.id DESC",
            (physician_id,),
        ).fetchall()
    return [_alert_dict(r) for r in rows]


def get_patient_alerts(conn, patient_id: int) -> list:
    get_patient(conn, patient_id)
    rows = conn.execute(
        f"SELECT {_ALERT_COLUMNS} FROM alerts WHERE patient_id = ? ORDER BY created_at DESC, id DESC",
        (patient_id,),
    ).fetchall()
    return [_alert_dict(r) for r in rows]


# ── Symptom submissions ──────────────────────────────────────────────────────

def submit_symptoms(conn, patient_id: int, day, observations: Iterable) -> list:
    """Store a day's observations (one row per symptom type) and return the alerts raised."""
    day = parse_day(day)
    if day > _today_local():
        raise ValidationError("Symptom date cannot be in the future")
    get_active_patient(conn, patient_id)
    parsed = [parse_observation(o) for o in observations]
    types = [o.symptom_type for o in parsed]
    if len(types) != len(set(types)):
        raise ValidationError("Each symptom type may appear only once per submission")

    raised = []
    now = _now_storage()
    try:
        for obs in parsed:
            columns = obs.columns()
            conn.execute(
                "INSERT INTO symptoms (patient_id, date, symptom_type, present, intensity, count,"
                " fever_temperature, fever_chills, notes, created_at) VALUES (?,?,?,?,?,?,?,?,?,?)"
                " ON CONFLICT (patient_id, date, symptom_type) DO UPDATE SET"
                " present = excluded.present, intensity = excluded.intensity, count = excluded.count,"
                " fever_temperature = excluded.fever_temperature, fever_chills = excluded.fever_chills,"
                " notes = excluded.notes",
                (
                    patient_id, day.isoformat(), obs.symptom_type, int(obs.present),
                    columns["intensity"], columns["count"], columns["fever_temperature"],
                    None if columns["fever_chills"] is None else int(columns["fever_chills"]),
                    obs.notes.strip(), now,
                ),
            )
            verdict = evaluate_symptom(obs)
            if verdict:
                severity, message = verdict
                raised.append(create_alert(conn, patient_id, "symptom", message, severity, commit=False))
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return raised


def get_symptoms(conn, patient_id: int, start: Optional[date] = None, end: Optional[date] = None) -> list:
    clauses = ["patient_id = ?"]
    params: list = [patient_id]
    if start:
        clauses.append("date >= ?")
        params.append(parse_day(start, "start").isoformat())
    if end:
        clauses.append("date <= ?")
        params.append(parse_day(end, "end").isoformat())
    rows = conn.execute(
        "SELECT id, patient_id, date, symptom_type, present, intensity, count, fever_temperature,"
        f" fever_chills, notes FROM symptoms WHERE {' AND '.join(clauses)} ORDER BY date, symptom_type",
        params,
    ).fetchall()
    return [dict(r) for r in rows]


# ── Urgent messages ──────────────────────────────────────────────────────────

def record_message(conn, patient_id: int, sender: str, content: str, is_urgent: bool = False) -> dict:
    get_active_patient(conn, patient_id)
    if not content.strip():
        raise ValidationError("Message content is required")
    cur = conn.execute(
        "INSERT INTO messages (patient_id, sender, content, is_urgent, created_at) VALUES (?, ?, ?, ?, ?)",
        (patient_id, sender, content.strip(), int(is_urgent), _now_storage()),
    )
    message_id = cur.lastrowid
    alert = None
    if is_urgent:
        alert = create_alert(
            conn, patient_id, "message", "Urgent message received from patient", "medium",
            message_id=message_id, commit=False,
        )
    conn.commit()
    return {"id": message_id, "patient_id": patient_id, "is_urgent": bool(is_urgent), "alert": alert}


def retract_message(conn, message_id: int, sender: str) -> None:
    """Delete a message and any alert it spawned; only its sender may do this."""
    row = conn.execute("SELECT id, sender FROM messages WHERE id = ?", (message_id,)).fetchone()
    if not row:
        raise NotFoundError(f"Message {message_id} not found")
    if row["sender"] != sender:
        raise ValidationError("Only the sender can retract a message")
    conn.execute("DELETE FROM alerts WHERE message_id = ?", (message_id,))
    conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
    conn.commit()

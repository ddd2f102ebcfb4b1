import logging
from datetime import date
from typing import Iterable, Optional

from config import CYCLE_EPOCH, _now_storage, _today_local
from cycle import MISSED, TAKE, date_range, resolve_day
from dosage_history import get_history, medication_on
from errors import NotFoundError, ValidationError
from overrides import list_overrides
from patients import get_active_patient, get_patient
from schemas import parse_day

logger = logging.getLogger(__name__)


def adherence_percentage(total_treatment_days: int, total_missed_days: int) -> float:
    """Share of expected treatment days actually dosed, 0-100; 100 before any exposure."""
    if total_treatment_days <= 0:
        return 100.0
    pct = (total_treatment_days - total_missed_days) / total_treatment_days * 100
    return round(min(max(pct, 0.0), 100.0), 1)


# ── Missed-dose reports ──────────────────────────────────────────────────────

def _report_dict(conn, report_row) -> dict:
    dates = [
        r["missed_date"]
        for r in conn.execute(
            "SELECT missed_date FROM missed_report_dates WHERE report_id = ? ORDER BY missed_date",
            (report_row["id"],),
        )
    ]
    return {**dict(report_row), "missed_dates": dates}


def get_missed_report(conn, report_id: int) -> dict:
    row = conn.execute(
        "SELECT id, patient_id, notes, created_at FROM missed_reports WHERE id = ?", (report_id,)
    ).fetchone()
    if not row:
        raise NotFoundError(f"Missed-dose report {report_id} not found")
    return _report_dict(conn, row)


def list_missed_reports(conn, patient_id: int) -> list:
    get_patient(conn, patient_id)
    rows = conn.execute(
        "SELECT id, patient_id, notes, created_at FROM missed_reports WHERE patient_id = ?"
        " ORDER BY created_at, id",
        (patient_id,),
    ).fetchall()
    return [_report_dict(conn, r) for r in rows]


def report_missed_doses(conn, patient_id: int, dates: Iterable, notes: str = "") -> dict:
    missed = sorted({parse_day(d, "missed date") for d in dates})
    if not missed:
        raise ValidationError("At least one missed date is required")
    if missed[-1] > _today_local():
        raise ValidationError(f"Missed date {missed[-1].isoformat()} is in the future")
    get_active_patient(conn, patient_id)
    try:
        cur = conn.execute(
            "INSERT INTO missed_reports (patient_id, notes, created_at) VALUES (?, ?, ?)",
            (patient_id, (notes or "").strip(), _now_storage()),
        )
        conn.executemany(
            "INSERT INTO missed_report_dates (report_id, missed_date) VALUES (?, ?)",
            [(cur.lastrowid, d.isoformat()) for d in missed],
        )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return get_missed_report(conn, cur.lastrowid)


def retract_missed_dose(conn, patient_id: int, day) -> dict:
    """Remove one date from the patient's reports.

    A report left without dates is deleted; any other report keeps its id and
    notes with the remaining dates.
    """
    day = parse_day(day)
    get_patient(conn, patient_id)
    report_ids = [
        r["id"]
        for r in conn.execute(
            "SELECT r.id FROM missed_reports r JOIN missed_report_dates d ON d.report_id = r.id"
            " WHERE r.patient_id = ? AND d.missed_date = ?",
            (patient_id, day.isoformat()),
        )
    ]
    if not report_ids:
        raise NotFoundError(f"No missed-dose report for patient {patient_id} on {day.isoformat()}")
    updated, deleted = [], []
    try:
        for report_id in report_ids:
            conn.execute(
                "DELETE FROM missed_report_dates WHERE report_id = ? AND missed_date = ?",
                (report_id, day.isoformat()),
            )
            remaining = conn.execute(
                "SELECT COUNT(*) FROM missed_report_dates WHERE report_id = ?", (report_id,)
            ).fetchone()[0]
            if remaining == 0:
                conn.execute("DELETE FROM missed_reports WHERE id = ?", (report_id,))
                deleted.append(report_id)
            else:
                updated.append(report_id)
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    return {
        "date": day.isoformat(),
        "deleted_reports": deleted,
        "updated_reports": [get_missed_report(conn, rid) for rid in updated],
    }


def _reported_missed_dates(conn, patient_id: int, start: date, end: date) -> set:
    rows = conn.execute(
        "SELECT DISTINCT d.missed_date FROM missed_report_dates d"
        " JOIN missed_reports r ON r.id = d.report_id"
        " WHERE r.patient_id = ? AND d.missed_date BETWEEN ? AND ?",
        (patient_id, start.isoformat(), end.isoformat()),
    ).fetchall()
    return {date.fromisoformat(r["missed_date"]) for r in rows}


# ── Adherence ────────────────────────────────────────────────────────────────

def adherence_window(patient: dict, today: date) -> Optional[tuple]:
    start_str = patient.get("adherence_start_date") or patient["treatment_start_date"]
    if not start_str:
        return None
    start = max(date.fromisoformat(start_str), CYCLE_EPOCH)
    if start > today:
        return None
    return start, today


def patient_adherence(conn, patient_id: int, today: Optional[date] = None) -> dict:
    patient = get_patient(conn, patient_id)
    today = today or _today_local()
    window = adherence_window(patient, today)
    if window is None:
        return {
            "patient_id": patient_id,
            "window_start": None,
            "window_end": today.isoformat(),
            "total_treatment_days": 0,
            "missed_days": 0,
            "adherence_pct": adherence_percentage(0, 0),
        }
    start, end = window
    history = get_history(conn, patient_id)
    overrides = {o["date"]: o for o in list_overrides(conn, patient_id, start, end)}
    reported = _reported_missed_dates(conn, patient_id, start, end)

    treatment_days = set(reported)
    missed = set(reported)
    for day in date_range(start, end):
        state = resolve_day(
            medication_on(history, day, patient["medication"]), day, overrides.get(day.isoformat())
        )["state"]
        if state in (TAKE, MISSED):
            treatment_days.add(day)
        if state == MISSED:
            missed.add(day)
    return {
        "patient_id": patient_id,
        "window_start": start.isoformat(),
        "window_end": end.isoformat(),
        "total_treatment_days": len(treatment_days),
        "missed_days": len(missed),
        "adherence_pct": adherence_percentage(len(treatment_days), len(missed)),
    }

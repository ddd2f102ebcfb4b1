"""Dosage-history log and the treatment-duration metrics derived from it.

Each patient has a chronological, non-overlapping list of dosage periods.
Exactly one period is open (``end_date IS NULL``); closed periods are never
rewritten. A dosage change closes the open period and opens the next one in a
single transaction.
"""
import logging
import math
from datetime import date, timedelta
from typing import Optional

from config import _now_storage, _today_local
from db import write_transaction
from dosing import max_dosage, valid_dosages, validate_dosage
from errors import ConsistencyError, ValidationError
from patients import get_active_patient, get_patient
from schemas import parse_day

logger = logging.getLogger(__name__)


def _ceil_weeks(days: int) -> int:
    return math.ceil(days / 7) if days > 0 else 0


def closed_weeks(start: date, effective: date) -> int:
    """Whole weeks spent on a dosage that ended the day before ``effective``."""
    return max((effective - start).days, 0) // 7


def get_history(conn, patient_id: int) -> list:
    rows = conn.execute(
        "SELECT id, patient_id, medication, dosage, treatment_setting, start_date, end_date,"
        " weeks_on_dosage FROM dosage_history WHERE patient_id = ? ORDER BY start_date, id",
        (patient_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def open_entry(conn, patient_id: int) -> Optional[dict]:
    rows = conn.execute(
        "SELECT * FROM dosage_history WHERE patient_id = ? AND end_date IS NULL ORDER BY start_date",
        (patient_id,),
    ).fetchall()
    if len(rows) > 1:
        logger.error(
            "Patient %s has %d open dosage-history entries (ids %s)",
            patient_id, len(rows), ", ".join(str(r["id"]) for r in rows),
        )
        raise ConsistencyError(
            f"Patient {patient_id} has {len(rows)} open dosage-history entries; expected exactly one"
        )
    return dict(rows[0]) if rows else None


def medication_on(history: list, day: date, fallback: str) -> str:
    """Medication in effect on ``day`` according to ``history`` (sorted by start date)."""
    iso = day.isoformat()
    for entry in history:
        if entry["start_date"] <= iso and (entry["end_date"] is None or iso <= entry["end_date"]):
            return entry["medication"]
    return fallback


def record_dosage_change(
    conn,
    patient_id: int,
    medication: str,
    dosage: str,
    effective_date,
    treatment_setting: Optional[str] = None,
) -> dict:
    effective = parse_day(effective_date, "effective_date")
    patient = get_active_patient(conn, patient_id)
    setting = treatment_setting or patient["treatment_setting"]
    validate_dosage(setting, medication, dosage)

    with write_transaction(conn):
        current = open_entry(conn, patient_id)
        if current is not None:
            start = date.fromisoformat(current["start_date"])
            if effective <= start:
                raise ValidationError(
                    f"Effective date {effective.isoformat()} must be after the current dosage"
                    f" start date {current['start_date']}"
                )
            if (current["medication"], current["dosage"], current["treatment_setting"]) == (
                medication, dosage, setting
            ):
                raise ValidationError(f"{medication} {dosage} ({setting}) is already the current dosage")
            conn.execute(
                "UPDATE dosage_history SET end_date = ?, weeks_on_dosage = ?"
                " WHERE id = ? AND end_date IS NULL",
                (
                    (effective - timedelta(days=1)).isoformat(),
                    closed_weeks(start, effective),
                    current["id"],
                ),
            )
        else:
            last_end = conn.execute(
                "SELECT MAX(end_date) FROM dosage_history WHERE patient_id = ?", (patient_id,)
            ).fetchone()[0]
            if last_end and effective.isoformat() <= last_end:
                raise ValidationError(
                    f"Effective date {effective.isoformat()} overlaps a closed dosage period ending {last_end}"
                )
        cur = conn.execute(
            "INSERT INTO dosage_history (patient_id, medication, dosage, treatment_setting,"
            " start_date, end_date, weeks_on_dosage, created_at) VALUES (?, ?, ?, ?, ?, NULL, NULL, ?)",
            (patient_id, medication, dosage, setting, effective.isoformat(), _now_storage()),
        )
        treatment_start = patient["treatment_start_date"] or effective.isoformat()
        conn.execute(
            "UPDATE patients SET medication = ?, dosage = ?, treatment_setting = ?,"
            " current_dosage_start_date = ?, treatment_start_date = ? WHERE id = ?",
            (medication, dosage, setting, effective.isoformat(), treatment_start, patient_id),
        )
        new_id = cur.lastrowid

    logger.info(
        "Patient %s dosage changed to %s %s (%s) effective %s",
        patient_id, medication, dosage, setting, effective.isoformat(),
    )
    row = conn.execute("SELECT * FROM dosage_history WHERE id = ?", (new_id,)).fetchone()
    return dict(row)


def weeks_on_treatment(conn, patient_id: int, today: Optional[date] = None) -> int:
    patient = get_patient(conn, patient_id)
    return weeks_since(patient["treatment_start_date"], today)


def weeks_since(start_str: str, today: Optional[date]) -> int:
    if not start_str:
        return 0
    today = today or _today_local()
    return _ceil_weeks((today - date.fromisoformat(start_str)).days)


def weeks_on_current_dosage(conn, patient_id: int, today: Optional[date] = None) -> int:
    patient = get_patient(conn, patient_id)
    setting, medication, dosage = patient["treatment_setting"], patient["medication"], patient["dosage"]
    if dosage not in valid_dosages(setting, medication):
        raise ValidationError(
            f"Stored dosage {dosage!r} for patient {patient_id} is not a labeled"
            f" {medication} dosage in the {setting} setting"
        )
    current = open_entry(conn, patient_id)
    if current is not None and (current["medication"], current["dosage"]) != (medication, dosage):
        raise ConsistencyError(
            f"Patient {patient_id} record says {medication} {dosage} but the open dosage-history"
            f" entry says {current['medication']} {current['dosage']}"
        )

    on_treatment = weeks_since(patient["treatment_start_date"], today)
    if dosage == max_dosage(setting, medication):
        return on_treatment
    if current is not None:
        dosage_start = current["start_date"]
    elif patient["current_dosage_start_date"]:
        logger.warning(
            "Patient %s has no open dosage-history entry; using current_dosage_start_date %s",
            patient_id, patient["current_dosage_start_date"],
        )
        dosage_start = patient["current_dosage_start_date"]
    else:
        logger.warning("Patient %s has no dosage start information", patient_id)
        return 0
    # A dosage period never outlasts the treatment it belongs to
    return min(weeks_since(dosage_start, today), on_treatment)


def treatment_weeks(conn, patient_id: int, today: Optional[date] = None) -> dict:
    return {
        "patient_id": patient_id,
        "weeks_on_treatment": weeks_on_treatment(conn, patient_id, today),
        "weeks_on_current_dosage": weeks_on_current_dosage(conn, patient_id, today),
    }

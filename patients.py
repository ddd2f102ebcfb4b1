import logging
from typing import Optional

from config import _now_storage
from dosing import validate_dosage
from errors import NotFoundError, ValidationError
from schemas import parse_optional_day

logger = logging.getLogger(__name__)


def create_physician(conn, name: str) -> dict:
    if not name.strip():
        raise ValidationError("Physician name is required")
    cur = conn.execute(
        "INSERT INTO physicians (name, created_at) VALUES (?, ?)", (name.strip(), _now_storage())
    )
    conn.commit()
    return {"id": cur.lastrowid, "name": name.strip()}


def _require_physician(conn, physician_id: Optional[int]):
    if physician_id is None:
        return
    if not conn.execute("SELECT 1 FROM physicians WHERE id = ?", (physician_id,)).fetchone():
        raise NotFoundError(f"Physician {physician_id} not found")


def get_patient(conn, patient_id: int, include_inactive: bool = True) -> dict:
    row = conn.execute("SELECT * FROM patients WHERE id = ?", (patient_id,)).fetchone()
    if not row or (not include_inactive and not row["active"]):
        raise NotFoundError(f"Patient {patient_id} not found")
    return dict(row)


def get_active_patient(conn, patient_id: int) -> dict:
    return get_patient(conn, patient_id, include_inactive=False)


def list_patients(conn, physician_id: Optional[int] = None, include_inactive: bool = False) -> list:
    clauses: list[str] = []
    params: list = []
    if physician_id is not None:
        clauses.append("physician_id = ?")
        params.append(physician_id)
    if not include_inactive:
        clauses.append("active = 1")
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    rows = conn.execute(f"SELECT * FROM patients {where} ORDER BY id", params).fetchall()
    return [dict(r) for r in rows]


def create_patient(
    conn,
    name: str,
    medication: str,
    dosage: str,
    treatment_setting: str,
    treatment_start_date=None,
    physician_id: Optional[int] = None,
) -> dict:
    """Register a patient and open their first dosage-history entry.

    The initial entry starts on the treatment start date; without one, history
    begins with the first recorded dosage change.
    """
    validate_dosage(treatment_setting, medication, dosage)
    start = parse_optional_day(treatment_start_date, "treatment_start_date")
    _require_physician(conn, physician_id)
    start_str = start.isoformat() if start else ""
    now = _now_storage()
    cur = conn.execute(
        "INSERT INTO patients (name, medication, dosage, treatment_setting, treatment_start_date,"
        " current_dosage_start_date, physician_id, active, created_at)"
        " VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?)",
        (name.strip(), medication, dosage, treatment_setting, start_str, start_str, physician_id, now),
    )
    patient_id = cur.lastrowid
    if start:
        conn.execute(
            "INSERT INTO dosage_history (patient_id, medication, dosage, treatment_setting,"
            " start_date, end_date, weeks_on_dosage, created_at) VALUES (?, ?, ?, ?, ?, NULL, NULL, ?)",
            (patient_id, medication, dosage, treatment_setting, start_str, now),
        )
    conn.commit()
    logger.info("Registered patient %s on %s %s (%s)", patient_id, medication, dosage, treatment_setting)
    return get_patient(conn, patient_id)


def update_treatment_profile(
    conn,
    patient_id: int,
    treatment_start_date=None,
    adherence_start_date=None,
    physician_id: Optional[int] = None,
) -> dict:
    patient = get_active_patient(conn, patient_id)
    updates: dict = {}
    first = None
    start = parse_optional_day(treatment_start_date, "treatment_start_date")
    if start:
        first = conn.execute(
            "SELECT MIN(start_date) FROM dosage_history WHERE patient_id = ?", (patient_id,)
        ).fetchone()[0]
        if first and first > start.isoformat():
            raise ValidationError(
                f"Treatment start date {start.isoformat()} precedes the first dosage entry ({first})"
            )
        current_start = conn.execute(
            "SELECT MAX(start_date) FROM dosage_history WHERE patient_id = ? AND end_date IS NULL",
            (patient_id,),
        ).fetchone()[0]
        if current_start and start.isoformat() > current_start:
            raise ValidationError(
                f"Treatment start date {start.isoformat()} is after the current dosage start ({current_start})"
            )
        updates["treatment_start_date"] = start.isoformat()
    adherence_start = parse_optional_day(adherence_start_date, "adherence_start_date")
    if adherence_start:
        updates["adherence_start_date"] = adherence_start.isoformat()
    if physician_id is not None:
        _require_physician(conn, physician_id)
        updates["physician_id"] = physician_id
    if not updates:
        return patient
    assignments = ", ".join(f"{col} = ?" for col in updates)
    conn.execute(
        f"UPDATE patients SET {assignments} WHERE id = ?", (*updates.values(), patient_id)
    )
    if start and not first:
        # First start date for a patient without history opens the initial entry
        conn.execute(
            "INSERT INTO dosage_history (patient_id, medication, dosage, treatment_setting,"
            " start_date, end_date, weeks_on_dosage, created_at) VALUES (?, ?, ?, ?, ?, NULL, NULL, ?)",
            (patient_id, patient["medication"], patient["dosage"], patient["treatment_setting"],
             start.isoformat(), _now_storage()),
        )
        conn.execute(
            "UPDATE patients SET current_dosage_start_date = ? WHERE id = ?",
            (start.isoformat(), patient_id),
        )
    conn.commit()
    return get_patient(conn, patient_id)


def deactivate_patient(conn, patient_id: int) -> dict:
    get_patient(conn, patient_id)
    conn.execute("UPDATE patients SET active = 0 WHERE id = ?", (patient_id,))
    conn.commit()
    logger.info("Deactivated patient %s", patient_id)
    return get_patient(conn, patient_id)

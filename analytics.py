"""Cross-patient rollups for the clinician dashboards.

Everything here is a read-only pass over the source tables. Nothing is
cached between calls, so results always reflect the current history rows.
"""
import csv
import io
import logging
from collections import defaultdict
from datetime import date
from typing import Optional

from adherence import patient_adherence
from config import HIGH_INTENSITY_THRESHOLD, MEDICATIONS, SEVERE_SYMPTOM_INTENSITY, TREATMENT_SETTINGS, _today_local
from dosage_history import closed_weeks, get_history, weeks_on_current_dosage, weeks_since
from dosing import DOSAGE_TABLE, validate_medication, validate_treatment_setting
from errors import ConsistencyError, ValidationError
from schemas import SYMPTOM_TYPES

logger = logging.getLogger(__name__)


def _validate_filters(medication: Optional[str], treatment_setting: Optional[str]):
    if medication:
        validate_medication(medication)
    if treatment_setting:
        validate_treatment_setting(treatment_setting)


def _mean(values: list) -> Optional[float]:
    return round(sum(values) / len(values), 1) if values else None


def _history_rows(conn, medication: Optional[str], treatment_setting: Optional[str]) -> list:
    clauses: list[str] = []
    params: list = []
    if medication:
        clauses.append("medication = ?")
        params.append(medication)
    if treatment_setting:
        clauses.append("treatment_setting = ?")
        params.append(treatment_setting)
    where = ("WHERE " + " AND ".join(clauses)) if clauses else ""
    return conn.execute(
        "SELECT id, patient_id, medication, dosage, treatment_setting, start_date, end_date,"
        f" weeks_on_dosage FROM dosage_history {where} ORDER BY patient_id, start_date, id",
        params,
    ).fetchall()


def _entry_weeks(row, today: date) -> int:
    if row["end_date"] is None:
        return closed_weeks(date.fromisoformat(row["start_date"]), today)
    return row["weeks_on_dosage"] or 0


def _dosage_rank(treatment_setting: str, medication: str, dosage: str) -> int:
    dosages = DOSAGE_TABLE.get(treatment_setting, {}).get(medication, [])
    return dosages.index(dosage) if dosage in dosages else len(dosages)


def dosage_breakdown(
    conn,
    medication: Optional[str] = None,
    treatment_setting: Optional[str] = None,
    today: Optional[date] = None,
) -> list:
    """Patients and mean weeks per (medication, setting, dosage) across all history rows."""
    _validate_filters(medication, treatment_setting)
    today = today or _today_local()
    patients = defaultdict(set)
    weeks = defaultdict(list)
    for row in _history_rows(conn, medication, treatment_setting):
        key = (row["medication"], row["treatment_setting"], row["dosage"])
        patients[key].add(row["patient_id"])
        weeks[key].append(_entry_weeks(row, today))
    ordered = sorted(
        patients,
        key=lambda k: (MEDICATIONS.index(k[0]) if k[0] in MEDICATIONS else len(MEDICATIONS),
                       k[1], _dosage_rank(k[1], k[0], k[2])),
    )
    return [
        {
            "medication": med,
            "treatment_setting": setting,
            "dosage": dosage,
            "patient_count": len(patients[(med, setting, dosage)]),
            "average_weeks": _mean(weeks[(med, setting, dosage)]),
        }
        for med, setting, dosage in ordered
    ]


def reduction_timing(
    conn,
    medication: Optional[str] = None,
    treatment_setting: Optional[str] = None,
) -> list:
    """Mean weeks before the first and second dosage reduction, per medication.

    Patients are grouped by the medication their history starts on.
    ``first_reduction`` uses patients whose second entry is still that
    medication, ``second_reduction`` those whose third entry is too; a switch
    to another drug ends the reduction sequence. A medication without any
    qualifying patient reports None, not 0.
    """
    _validate_filters(medication, treatment_setting)
    clauses = ["active = 1"]
    params: list = []
    if treatment_setting:
        clauses.append("treatment_setting = ?")
        params.append(treatment_setting)
    patients = conn.execute(
        f"SELECT id, medication FROM patients WHERE {' AND '.join(clauses)} ORDER BY id",
        params,
    ).fetchall()

    first = defaultdict(list)
    second = defaultdict(list)
    counted = defaultdict(int)
    for p in patients:
        entries = get_history(conn, p["id"])
        med = entries[0]["medication"] if entries else p["medication"]
        counted[med] += 1
        # Only the leading run on the starting drug counts as reductions
        run = 0
        for entry in entries[:3]:
            if entry["medication"] != med:
                break
            run += 1
        if run >= 2:
            first[med].append(entries[0]["weeks_on_dosage"] or 0)
        if run >= 3:
            second[med].append(
                (entries[0]["weeks_on_dosage"] or 0) + (entries[1]["weeks_on_dosage"] or 0)
            )

    meds = [medication] if medication else list(MEDICATIONS)
    return [
        {
            "medication": med,
            "patient_count": counted[med],
            "first_reduction": _mean(first[med]),
            "second_reduction": _mean(second[med]),
            "patients_with_first": len(first[med]),
            "patients_with_second": len(second[med]),
        }
        for med in meds
    ]


def symptom_by_dosage(
    conn,
    symptom_type: str,
    treatment_setting: Optional[str] = None,
    medication: Optional[str] = None,
) -> list:
    """Share of each (medication, dosage) group with a severe episode of ``symptom_type``.

    A patient belongs to every group they have a dosage period in, and is
    affected in all of them once any observation reaches the severity
    cut-off. The denominator is distinct patients, not observations.
    """
    if symptom_type not in SYMPTOM_TYPES:
        raise ValidationError(f"Unknown symptom type {symptom_type!r}")
    _validate_filters(medication, treatment_setting)

    severe = {
        row["patient_id"]
        for row in conn.execute(
            "SELECT DISTINCT patient_id FROM symptoms"
            " WHERE symptom_type = ? AND present = 1 AND intensity >= ?",
            (symptom_type, SEVERE_SYMPTOM_INTENSITY),
        )
    }

    members = defaultdict(set)
    affected = defaultdict(set)
    for row in _history_rows(conn, medication, treatment_setting):
        key = (row["medication"], row["dosage"])
        members[key].add(row["patient_id"])
        if row["patient_id"] in severe:
            affected[key].add(row["patient_id"])

    pairs = []
    settings = [treatment_setting] if treatment_setting else list(TREATMENT_SETTINGS)
    meds = [medication] if medication else list(MEDICATIONS)
    for med in meds:
        for setting in settings:
            for dosage in DOSAGE_TABLE[setting][med]:
                if (med, dosage) not in pairs:
                    pairs.append((med, dosage))
    # Dosages present in history but missing from the table still get reported
    pairs.extend(sorted(k for k in members if k not in pairs))

    result = []
    for med, dosage in pairs:
        total = len(members[(med, dosage)])
        hit = len(affected[(med, dosage)])
        result.append({
            "medication": med,
            "dosage": dosage,
            "patient_count": total,
            "affected_patients": hit,
            "percentage": round(hit / total * 100, 1) if total else None,
        })
    return result


def population_summary(conn, medication: Optional[str] = None, today: Optional[date] = None) -> dict:
    _validate_filters(medication, None)
    today = today or _today_local()
    params: list = []
    where = "WHERE active = 1"
    if medication:
        where += " AND medication = ?"
        params.append(medication)
    rows = conn.execute(
        f"SELECT id, medication, treatment_setting, treatment_start_date FROM patients {where}", params
    ).fetchall()
    weeks_by_setting = defaultdict(list)
    by_medication = defaultdict(int)
    for row in rows:
        weeks_by_setting[row["treatment_setting"]].append(weeks_since(row["treatment_start_date"], today))
        by_medication[row["medication"]] += 1
    return {
        "total_patients": len(rows),
        "by_medication": {med: by_medication[med] for med in MEDICATIONS},
        "settings": {
            setting: {
                "patients": len(weeks_by_setting[setting]),
                "average_weeks_on_treatment": _mean(weeks_by_setting[setting]),
            }
            for setting in TREATMENT_SETTINGS
        },
    }


# ── Per-patient report ───────────────────────────────────────────────────────

REPORT_FIELDS = [
    "patient_id", "name", "medication", "dosage", "treatment_setting", "treatment_start_date",
    "weeks_on_treatment", "weeks_on_current_dosage", "adherence_pct", "total_symptoms",
    "high_severity_symptoms", "last_symptom_report", "dosage_reductions", "missed_days",
    "total_treatment_days", "data_issue",
]


def patient_report(
    conn,
    medication: Optional[str] = None,
    treatment_setting: Optional[str] = None,
    physician_id: Optional[int] = None,
    today: Optional[date] = None,
) -> list:
    """One row per active patient with duration, adherence and symptom burden.

    A patient whose stored data is inconsistent still gets a row; the
    affected metric is None and ``data_issue`` carries the reason.
    """
    _validate_filters(medication, treatment_setting)
    today = today or _today_local()
    clauses = ["active = 1"]
    params: list = []
    for column, value in (("medication", medication), ("treatment_setting", treatment_setting),
                          ("physician_id", physician_id)):
        if value is not None and value != "":
            clauses.append(f"{column} = ?")
            params.append(value)
    patients = conn.execute(
        f"SELECT * FROM patients WHERE {' AND '.join(clauses)} ORDER BY id", params
    ).fetchall()

    report = []
    for p in patients:
        symptoms = conn.execute(
            "SELECT COUNT(*) AS total,"
            " SUM(CASE WHEN intensity > ? THEN 1 ELSE 0 END) AS high,"
            " MAX(date) AS last_date"
            " FROM symptoms WHERE patient_id = ? AND present = 1",
            (HIGH_INTENSITY_THRESHOLD, p["id"]),
        ).fetchone()
        history = get_history(conn, p["id"])
        row = {
            "patient_id": p["id"],
            "name": p["name"],
            "medication": p["medication"],
            "dosage": p["dosage"],
            "treatment_setting": p["treatment_setting"],
            "treatment_start_date": p["treatment_start_date"] or None,
            "weeks_on_treatment": weeks_since(p["treatment_start_date"], today),
            "weeks_on_current_dosage": None,
            "total_symptoms": symptoms["total"] or 0,
            "high_severity_symptoms": symptoms["high"] or 0,
            "last_symptom_report": symptoms["last_date"],
            "dosage_reductions": max(len(history) - 1, 0),
            "data_issue": None,
        }
        try:
            row["weeks_on_current_dosage"] = weeks_on_current_dosage(conn, p["id"], today)
        except (ConsistencyError, ValidationError) as exc:
            logger.warning("Patient %s report row incomplete: %s", p["id"], exc)
            row["data_issue"] = str(exc)
        adherence = patient_adherence(conn, p["id"], today)
        row["adherence_pct"] = adherence["adherence_pct"]
        row["missed_days"] = adherence["missed_days"]
        row["total_treatment_days"] = adherence["total_treatment_days"]
        report.append(row)
    return report


def patient_report_csv(rows: list) -> str:
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=REPORT_FIELDS, extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({k: "" if row.get(k) is None else row.get(k) for k in REPORT_FIELDS})
    return buf.getvalue()

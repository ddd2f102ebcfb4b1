"""
Seed script: populates a demo cohort for the clinician dashboards.

- Creates one demo physician and six patients spread across the three
  CDK4/6 inhibitors and both treatment settings.
- Records dosage reductions, a therapy-pause week, symptom diaries and
  missed-dose reports through the engine functions, so every row obeys the
  same validation as live traffic.
- Safe to re-run: existing demo rows (physician name DEMO_PHYSICIAN) are
  deactivated, never deleted.

Usage:
    python3 seed.py
"""

import random
from datetime import date, timedelta
from typing import Optional

from adherence import report_missed_doses
from alerts import submit_symptoms
from config import _today_local
from db import get_db, init_db
from dosage_history import record_dosage_change
from overrides import bulk_set_therapy_pause_week
from patients import create_patient, create_physician

DEMO_PHYSICIAN = "Dr. Demo Oncologist"

# (name, medication, start dosage, setting, weeks ago started, reductions as (weeks after start, dosage))
COHORT = [
    ("Anna Bianchi",   "palbociclib", "125mg", "metastatic", 40, [(12, "100mg"), (24, "75mg")]),
    ("Carla Verdi",    "palbociclib", "125mg", "metastatic", 20, [(8, "100mg")]),
    ("Elena Russo",    "ribociclib",  "600mg", "metastatic", 30, [(10, "400mg")]),
    ("Giulia Ferrari", "ribociclib",  "400mg", "adjuvant",   26, []),
    ("Laura Esposito", "abemaciclib", "150mg", "adjuvant",   35, [(6, "100mg"), (18, "50mg")]),
    ("Marta Romano",   "abemaciclib", "150mg", "metastatic", 15, []),
]

INTENSITY_TYPES = ["stanchezza", "malessere", "rash", "dolore_addominale", "dolori_articolari"]


def seed(conn, today: Optional[date] = None, rng_seed: int = 42) -> dict:
    today = today or _today_local()
    rng = random.Random(rng_seed)  # fixed seed for reproducibility

    conn.execute(
        "UPDATE patients SET active = 0 WHERE physician_id IN"
        " (SELECT id FROM physicians WHERE name = ?)",
        (DEMO_PHYSICIAN,),
    )
    conn.commit()
    physician = create_physician(conn, DEMO_PHYSICIAN)

    summary = {"physician_id": physician["id"], "patients": [], "alerts": 0}
    for name, medication, dosage, setting, weeks_ago, reductions in COHORT:
        start = today - timedelta(weeks=weeks_ago)
        patient = create_patient(
            conn, name, medication, dosage, setting,
            treatment_start_date=start, physician_id=physician["id"],
        )
        pid = patient["id"]
        for weeks_after, reduced in reductions:
            record_dosage_change(conn, pid, medication, reduced, start + timedelta(weeks=weeks_after))

        if medication != "abemaciclib" and weeks_ago > 12:
            bulk_set_therapy_pause_week(conn, pid, start + timedelta(weeks=4), cycles=1)

        # Symptom diary roughly every five days for the last eight weeks
        for offset in range(56, 0, -5):
            day = today - timedelta(days=offset)
            if day < start:
                continue
            observations = [
                {"symptom_type": t, "present": rng.random() < 0.4, "intensity": rng.randint(1, 9)}
                for t in rng.sample(INTENSITY_TYPES, 2)
            ]
            if medication == "abemaciclib":
                observations.append(
                    {"symptom_type": "diarrea", "present": True, "count": rng.randint(0, 4)}
                )
            summary["alerts"] += len(submit_symptoms(conn, pid, day, observations))

        missed = sorted({today - timedelta(days=rng.randint(1, 60)) for _ in range(rng.randint(0, 4))})
        missed = [d for d in missed if d >= start]
        if missed:
            report_missed_doses(conn, pid, missed, "Forgot the evening dose")
        summary["patients"].append(pid)
    return summary


if __name__ == "__main__":
    init_db()
    with get_db() as conn:
        result = seed(conn)
    print(
        f"Seeded physician {result['physician_id']} with {len(result['patients'])} patients"
        f" ({result['alerts']} alerts raised)."
    )

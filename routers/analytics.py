from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response

from analytics import (
    dosage_breakdown,
    patient_report,
    patient_report_csv,
    population_summary,
    reduction_timing,
    symptom_by_dosage,
)
from config import _today_local
from db import get_db

router = APIRouter()


@router.get("/api/analytics/dosage-breakdown")
def api_dosage_breakdown(medication: str = "", treatment_setting: str = ""):
    with get_db() as conn:
        rows = dosage_breakdown(conn, medication or None, treatment_setting or None)
    return JSONResponse({"breakdown": rows})


@router.get("/api/analytics/reduction-timing")
def api_reduction_timing(medication: str = "", treatment_setting: str = ""):
    with get_db() as conn:
        rows = reduction_timing(conn, medication or None, treatment_setting or None)
    return JSONResponse({"reductions": rows})


@router.get("/api/analytics/symptoms-by-dosage")
def api_symptoms_by_dosage(symptom_type: str, medication: str = "", treatment_setting: str = ""):
    with get_db() as conn:
        rows = symptom_by_dosage(conn, symptom_type, treatment_setting or None, medication or None)
    return JSONResponse({"symptom_type": symptom_type, "groups": rows})


@router.get("/api/analytics/population")
def api_population(medication: str = ""):
    with get_db() as conn:
        summary = population_summary(conn, medication or None)
    return JSONResponse(summary)


@router.get("/api/analytics/patients")
def api_patient_report(medication: str = "", treatment_setting: str = "", physician_id: Optional[int] = None):
    with get_db() as conn:
        rows = patient_report(conn, medication or None, treatment_setting or None, physician_id)
    return JSONResponse({"patients": rows})


@router.get("/api/analytics/patients.csv")
def api_patient_report_csv(medication: str = "", treatment_setting: str = "", physician_id: Optional[int] = None):
    with get_db() as conn:
        rows = patient_report(conn, medication or None, treatment_setting or None, physician_id)
    filename = f"patient-analytics-{_today_local().isoformat()}.csv"
    return Response(
        patient_report_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from db import get_db
from dosage_history import get_history, record_dosage_change, treatment_weeks
from dosing import DOSAGE_TABLE
from patients import get_patient
from schemas import DosageChangeIn

router = APIRouter()


@router.get("/api/dosages")
def api_dosage_table():
    return JSONResponse({"dosages": DOSAGE_TABLE})


@router.post("/api/patients/{patient_id}/dosage")
def api_dosage_change(patient_id: int, payload: DosageChangeIn):
    with get_db() as conn:
        entry = record_dosage_change(
            conn,
            patient_id,
            payload.medication,
            payload.dosage,
            payload.effective_date,
            treatment_setting=payload.treatment_setting,
        )
    return JSONResponse({"ok": True, "entry": entry})


@router.get("/api/patients/{patient_id}/dosage/history")
def api_dosage_history(patient_id: int):
    with get_db() as conn:
        get_patient(conn, patient_id)
        history = get_history(conn, patient_id)
    return JSONResponse({"patient_id": patient_id, "history": history})


@router.get("/api/patients/{patient_id}/treatment-weeks")
def api_treatment_weeks(patient_id: int):
    with get_db() as conn:
        weeks = treatment_weeks(conn, patient_id)
    return JSONResponse(weeks)

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from db import get_db
from patients import (
    create_patient,
    create_physician,
    deactivate_patient,
    get_patient,
    list_patients,
    update_treatment_profile,
)
from schemas import PatientIn, PhysicianIn, TreatmentProfileIn

router = APIRouter()


@router.post("/api/physicians")
def api_physicians_create(payload: PhysicianIn):
    with get_db() as conn:
        physician = create_physician(conn, payload.name)
    return JSONResponse({"ok": True, "physician": physician}, status_code=201)


@router.post("/api/patients")
def api_patients_create(payload: PatientIn):
    with get_db() as conn:
        patient = create_patient(
            conn,
            payload.name,
            payload.medication,
            payload.dosage,
            payload.treatment_setting,
            treatment_start_date=payload.treatment_start_date,
            physician_id=payload.physician_id,
        )
    return JSONResponse({"ok": True, "patient": patient}, status_code=201)


@router.get("/api/patients")
def api_patients_list(physician_id: Optional[int] = None, include_inactive: bool = False):
    with get_db() as conn:
        patients = list_patients(conn, physician_id=physician_id, include_inactive=include_inactive)
    return JSONResponse({"patients": patients})


@router.get("/api/patients/{patient_id}")
def api_patient_get(patient_id: int):
    with get_db() as conn:
        patient = get_patient(conn, patient_id)
    return JSONResponse({"patient": patient})


@router.patch("/api/patients/{patient_id}")
def api_patient_update(patient_id: int, payload: TreatmentProfileIn):
    with get_db() as conn:
        patient = update_treatment_profile(
            conn,
            patient_id,
            treatment_start_date=payload.treatment_start_date,
            adherence_start_date=payload.adherence_start_date,
            physician_id=payload.physician_id,
        )
    return JSONResponse({"ok": True, "patient": patient})


@router.post("/api/patients/{patient_id}/deactivate")
def api_patient_deactivate(patient_id: int):
    with get_db() as conn:
        patient = deactivate_patient(conn, patient_id)
    return JSONResponse({"ok": True, "patient": patient})

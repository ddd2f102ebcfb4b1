from fastapi import APIRouter
from fastapi.responses import JSONResponse

from adherence import list_missed_reports, patient_adherence, report_missed_doses, retract_missed_dose
from db import get_db
from schemas import MissedDosesIn

router = APIRouter()


@router.post("/api/patients/{patient_id}/missed-doses")
def api_missed_doses_report(patient_id: int, payload: MissedDosesIn):
    with get_db() as conn:
        report = report_missed_doses(conn, patient_id, payload.dates, payload.notes)
    return JSONResponse({"ok": True, "report": report}, status_code=201)


@router.get("/api/patients/{patient_id}/missed-doses")
def api_missed_doses_list(patient_id: int):
    with get_db() as conn:
        reports = list_missed_reports(conn, patient_id)
    return JSONResponse({"patient_id": patient_id, "reports": reports})


@router.delete("/api/patients/{patient_id}/missed-doses/{day}")
def api_missed_dose_retract(patient_id: int, day: str):
    with get_db() as conn:
        result = retract_missed_dose(conn, patient_id, day)
    return JSONResponse({"ok": True, **result})


@router.get("/api/patients/{patient_id}/adherence")
def api_patient_adherence(patient_id: int):
    with get_db() as conn:
        adherence = patient_adherence(conn, patient_id)
    return JSONResponse(adherence)

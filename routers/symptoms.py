from fastapi import APIRouter
from fastapi.responses import JSONResponse

from alerts import get_symptoms, record_message, retract_message, submit_symptoms
from db import get_db
from schemas import MessageIn, SymptomSubmissionIn

router = APIRouter()


@router.post("/api/patients/{patient_id}/symptoms")
def api_symptoms_submit(patient_id: int, payload: SymptomSubmissionIn):
    with get_db() as conn:
        raised = submit_symptoms(conn, patient_id, payload.date, payload.observations)
    return JSONResponse({"ok": True, "alerts": raised}, status_code=201)


@router.get("/api/patients/{patient_id}/symptoms")
def api_symptoms_list(patient_id: int, start: str = "", end: str = ""):
    with get_db() as conn:
        rows = get_symptoms(conn, patient_id, start or None, end or None)
    return JSONResponse({"patient_id": patient_id, "symptoms": rows})


@router.post("/api/patients/{patient_id}/messages")
def api_message_create(patient_id: int, payload: MessageIn):
    with get_db() as conn:
        message = record_message(conn, patient_id, payload.sender, payload.content, payload.is_urgent)
    return JSONResponse({"ok": True, "message": message}, status_code=201)


@router.delete("/api/messages/{message_id}")
def api_message_retract(message_id: int, sender: str):
    with get_db() as conn:
        retract_message(conn, message_id, sender)
    return JSONResponse({"ok": True})

from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from alerts import create_manual_alert, get_active_alerts, get_patient_alerts, resolve_alert
from db import get_db
from schemas import ManualAlertIn

router = APIRouter()


@router.get("/api/alerts")
def api_alerts_active(physician_id: Optional[int] = None):
    with get_db() as conn:
        alerts = get_active_alerts(conn, physician_id)
    return JSONResponse({"alerts": alerts})


@router.post("/api/alerts")
def api_alert_manual(payload: ManualAlertIn):
    with get_db() as conn:
        alert = create_manual_alert(conn, payload.patient_id, payload.message, payload.severity)
    return JSONResponse({"ok": True, "alert": alert}, status_code=201)


@router.post("/api/alerts/{alert_id}/resolve")
def api_alert_resolve(alert_id: int):
    with get_db() as conn:
        alert = resolve_alert(conn, alert_id)
    return JSONResponse({"ok": True, "alert": alert})


@router.get("/api/patients/{patient_id}/alerts")
def api_patient_alerts(patient_id: int):
    with get_db() as conn:
        alerts = get_patient_alerts(conn, patient_id)
    return JSONResponse({"patient_id": patient_id, "alerts": alerts})

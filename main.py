import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config import CLIENT_DATE_HEADER, LOG_LEVEL, _set_client_clock
from db import init_db
from errors import EngineError
from routers import adherence, alerts, analytics, dosage, patients, schedule, symptoms

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

init_db()

app = FastAPI(title="Cycle Adherence Engine")


@app.middleware("http")
async def client_clock_middleware(request: Request, call_next):
    _set_client_clock(request.headers.get(CLIENT_DATE_HEADER, ""))
    return await call_next(request)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    if exc.status_code >= 409:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse({"ok": False, "error": str(exc)}, status_code=exc.status_code)


@app.get("/")
def root():
    return {"service": "cycle-adherence", "status": "ok"}


app.include_router(patients.router)
app.include_router(schedule.router)
app.include_router(dosage.router)
app.include_router(adherence.router)
app.include_router(symptoms.router)
app.include_router(alerts.router)
app.include_router(analytics.router)

import os
from contextvars import ContextVar
from datetime import date, datetime
from typing import Optional

DB_PATH = os.environ.get("ADHERENCE_DB_PATH", "adherence.db")
LOG_LEVEL = os.environ.get("ADHERENCE_LOG_LEVEL", "INFO").upper()
CLIENT_DATE_HEADER = "x-client-date"

# Canonical 21/7 cycles are anchored here; earlier dates are unsupported.
CYCLE_EPOCH = date.fromisoformat(os.environ.get("ADHERENCE_CYCLE_EPOCH", "2024-01-01"))
CYCLE_LENGTH_DAYS = 28
CYCLE_TAKE_DAYS = 21

THERAPY_PAUSE_DAYS = 7
THERAPY_PAUSE_FOLLOWING_CYCLES = int(os.environ.get("ADHERENCE_PAUSE_FOLLOWING_CYCLES", "3"))

HIGH_INTENSITY_THRESHOLD = 7   # alert when intensity is strictly above
DIARRHEA_COUNT_THRESHOLD = 3   # alert when episodes per day reach this
SEVERE_SYMPTOM_INTENSITY = 5   # analytics: "severe" observation cut-off

MAX_SCHEDULE_RANGE_DAYS = 400

MEDICATIONS = ("abemaciclib", "ribociclib", "palbociclib")
TREATMENT_SETTINGS = ("metastatic", "adjuvant")
EVENT_TYPES = ("taken", "pause", "missed")
ALERT_TYPES = ("symptom", "message", "manual")
ALERT_SEVERITIES = ("low", "medium", "high")

_client_today: ContextVar[Optional[date]] = ContextVar("_client_today", default=None)


def _set_client_clock(client_date_header: str):
    """Set the per-request "today" from the client's local date header, if well formed."""
    try:
        _client_today.set(date.fromisoformat((client_date_header or "").strip()))
    except ValueError:
        _client_today.set(None)


def _today_local() -> date:
    return _client_today.get() or date.today()


def _now_storage() -> str:
    return datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")

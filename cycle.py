"""Canonical dosing cycles for CDK4/6 inhibitors.

Every caller that needs to know whether a day is a treatment day goes through
this module, so the epoch and cycle arithmetic live in exactly one place.
Nothing here touches the database.
"""
import logging
from datetime import date, timedelta
from typing import Optional

from config import (
    CYCLE_EPOCH,
    CYCLE_LENGTH_DAYS,
    CYCLE_TAKE_DAYS,
    THERAPY_PAUSE_DAYS,
)
from errors import CycleRangeError

logger = logging.getLogger(__name__)

TAKE = "take"
PAUSE = "pause"
MISSED = "missed"

CONTINUOUS_MEDICATIONS = {"abemaciclib"}
CYCLIC_MEDICATIONS = {"ribociclib", "palbociclib"}

# Override event type -> day state
_OVERRIDE_STATES = {"taken": TAKE, "pause": PAUSE, "missed": MISSED}


def cycle_day(day: date) -> int:
    """Zero-based offset of ``day`` within its cycle.

    Precondition: ``day`` is on or after ``CYCLE_EPOCH``. Earlier dates raise
    ``CycleRangeError`` instead of wrapping around.
    """
    offset = (day - CYCLE_EPOCH).days
    if offset < 0:
        raise CycleRangeError(
            f"Date {day.isoformat()} is before the cycle epoch {CYCLE_EPOCH.isoformat()}"
        )
    return offset % CYCLE_LENGTH_DAYS


def schedule_state(medication: str, day: date) -> str:
    if medication in CONTINUOUS_MEDICATIONS:
        return TAKE
    if medication in CYCLIC_MEDICATIONS:
        return TAKE if cycle_day(day) < CYCLE_TAKE_DAYS else PAUSE
    # Unknown drug must not break schedule display; flag it for operators.
    logger.warning("Unknown medication %r on %s, defaulting to pause", medication, day.isoformat())
    return PAUSE


def resolve_day(medication: str, day: date, override: Optional[dict] = None) -> dict:
    """Day state with its source; an override replaces the canonical result entirely."""
    if override is not None:
        return {
            "date": day.isoformat(),
            "state": _OVERRIDE_STATES[override["event_type"]],
            "source": "override",
            "event_type": override["event_type"],
            "notes": override.get("notes") or "",
        }
    return {
        "date": day.isoformat(),
        "state": schedule_state(medication, day),
        "source": "canonical",
        "event_type": None,
        "notes": "",
    }


def therapy_pause_plan(medication: str, start: date, cycles: int) -> list:
    """Return ``(date, event_type)`` pairs for a therapy-pause insertion.

    One pause week from ``start``; for 21/7 drugs the following ``cycles``
    cycles are regenerated (3 weeks taken, 1 week pause) from the day after it.
    """
    plan = [(start + timedelta(days=i), "pause") for i in range(THERAPY_PAUSE_DAYS)]
    if medication not in CYCLIC_MEDICATIONS:
        return plan
    anchor = start + timedelta(days=THERAPY_PAUSE_DAYS)
    for i in range(cycles * CYCLE_LENGTH_DAYS):
        event_type = "taken" if i % CYCLE_LENGTH_DAYS < CYCLE_TAKE_DAYS else "pause"
        plan.append((anchor + timedelta(days=i), event_type))
    return plan


def date_range(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)

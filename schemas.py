"""Request bodies and the symptom observation variants.

Symptom records differ in shape by type (intensity, diarrhea episode count,
fever temperature, plain flag), so observations are a union discriminated on
``symptom_type`` rather than one record with every field nullable.
"""
from datetime import date
from typing import Annotated, List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from errors import ValidationError

INTENSITY_SYMPTOMS = ("stanchezza", "malessere", "rash", "dolore_addominale", "dolori_articolari")
SYMPTOM_TYPES = INTENSITY_SYMPTOMS + ("diarrea", "febbre", "sintomi_influenzali")


def parse_day(value, field: str = "date") -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"Invalid date format for {field}: {value!r} (expected YYYY-MM-DD)")


def parse_optional_day(value, field: str) -> Optional[date]:
    if value is None or str(value).strip() == "":
        return None
    return parse_day(value, field)


# ── Symptom variants ─────────────────────────────────────────────────────────

class _SymptomBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    present: bool = False
    notes: str = ""

    def columns(self) -> dict:
        return {"intensity": None, "count": None, "fever_temperature": None, "fever_chills": None}


class IntensitySymptom(_SymptomBase):
    symptom_type: Literal["stanchezza", "malessere", "rash", "dolore_addominale", "dolori_articolari"]
    intensity: Optional[int] = Field(None, ge=0, le=10)

    def columns(self) -> dict:
        return {**super().columns(), "intensity": self.intensity}


class DiarrheaSymptom(_SymptomBase):
    symptom_type: Literal["diarrea"]
    count: Optional[int] = Field(None, ge=0, description="Episodes per day")
    intensity: Optional[int] = Field(None, ge=0, le=10)

    def columns(self) -> dict:
        return {**super().columns(), "intensity": self.intensity, "count": self.count}


class FeverSymptom(_SymptomBase):
    symptom_type: Literal["febbre"]
    temperature: Optional[float] = Field(None, ge=30, le=45, description="Degrees Celsius")
    chills: Optional[bool] = None
    intensity: Optional[int] = Field(None, ge=0, le=10)

    def columns(self) -> dict:
        return {
            **super().columns(),
            "intensity": self.intensity,
            "fever_temperature": self.temperature,
            "fever_chills": self.chills,
        }


class FlagSymptom(_SymptomBase):
    symptom_type: Literal["sintomi_influenzali"]


SymptomObservation = Annotated[
    Union[IntensitySymptom, DiarrheaSymptom, FeverSymptom, FlagSymptom],
    Field(discriminator="symptom_type"),
]
_observation_adapter = TypeAdapter(SymptomObservation)


def parse_observation(data) -> _SymptomBase:
    if isinstance(data, _SymptomBase):
        return data
    try:
        return _observation_adapter.validate_python(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid symptom observation ({where}): {first.get('msg')}")


# ── Request bodies ───────────────────────────────────────────────────────────

class PhysicianIn(BaseModel):
    name: str = Field(..., min_length=1)


class PatientIn(BaseModel):
    name: str = ""
    medication: str
    dosage: str
    treatment_setting: str
    treatment_start_date: Optional[str] = None
    physician_id: Optional[int] = None


class TreatmentProfileIn(BaseModel):
    treatment_start_date: Optional[str] = None
    adherence_start_date: Optional[str] = None
    physician_id: Optional[int] = None


class OverrideIn(BaseModel):
    event_type: Literal["taken", "pause", "missed"]
    notes: str = ""


class TherapyPauseIn(BaseModel):
    start_date: str
    cycles: Optional[int] = Field(None, ge=0, le=12)


class DosageChangeIn(BaseModel):
    medication: str
    dosage: str
    effective_date: str
    treatment_setting: Optional[str] = None


class MissedDosesIn(BaseModel):
    dates: List[str]
    notes: str = ""


class SymptomSubmissionIn(BaseModel):
    date: str
    observations: List[SymptomObservation]


class MessageIn(BaseModel):
    sender: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    is_urgent: bool = False


class ManualAlertIn(BaseModel):
    patient_id: int
    message: str = Field(..., min_length=1)
    severity: Literal["low", "medium", "high"] = "medium"

from typing import Optional

from config import MEDICATIONS, TREATMENT_SETTINGS
from errors import ValidationError

# Labeled dosages per (treatment setting, medication), highest first.
DOSAGE_TABLE = {
    "metastatic": {
        "abemaciclib": ["150mg", "100mg", "50mg"],
        "ribociclib":  ["600mg", "400mg", "200mg"],
        "palbociclib": ["125mg", "100mg", "75mg"],
    },
    "adjuvant": {
        "abemaciclib": ["150mg", "100mg", "50mg"],
        "ribociclib":  ["400mg", "200mg"],
        "palbociclib": [],
    },
}


def valid_dosages(treatment_setting: str, medication: str) -> list:
    return list(DOSAGE_TABLE.get(treatment_setting, {}).get(medication, []))


def max_dosage(treatment_setting: str, medication: str) -> Optional[str]:
    dosages = valid_dosages(treatment_setting, medication)
    return dosages[0] if dosages else None


def validate_medication(medication: str):
    if medication not in MEDICATIONS:
        raise ValidationError(
            f"Unknown medication {medication!r}; expected one of {', '.join(MEDICATIONS)}"
        )


def validate_treatment_setting(treatment_setting: str):
    if treatment_setting not in TREATMENT_SETTINGS:
        raise ValidationError(
            f"Unknown treatment setting {treatment_setting!r};"
            f" expected one of {', '.join(TREATMENT_SETTINGS)}"
        )


def validate_dosage(treatment_setting: str, medication: str, dosage: str):
    validate_treatment_setting(treatment_setting)
    validate_medication(medication)
    allowed = valid_dosages(treatment_setting, medication)
    if not allowed:
        raise ValidationError(f"{medication} has no valid dosage in the {treatment_setting} setting")
    if dosage not in allowed:
        raise ValidationError(
            f"Dosage {dosage!r} is not valid for {medication} ({treatment_setting});"
            f" expected one of {', '.join(allowed)}"
        )

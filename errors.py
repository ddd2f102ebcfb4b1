class EngineError(Exception):
    """Base class for errors raised by the adherence engine."""

    status_code = 500


class ValidationError(EngineError, ValueError):
    """Input rejected before any write; the message names the violated constraint."""

    status_code = 400


class CycleRangeError(ValidationError):
    """Date falls before the cycle epoch, where cycle days are undefined."""


class NotFoundError(EngineError, LookupError):
    status_code = 404


class ConsistencyError(EngineError):
    """Stored rows contradict an invariant (e.g. two open dosage-history entries)."""

    status_code = 409

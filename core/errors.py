"""Error taxonomy for CardioCheck.

Only SessionNotFound, ValidationError and InsufficientData ever reach a caller
of the system facade. ParseAmbiguous and ExternalServiceUnavailable are raised
inside components and recovered at their boundary (re-prompt or fallback).
"""
from typing import Iterable, Optional


class CardioCheckError(Exception):
    """Base class for all CardioCheck errors."""


class ValidationError(CardioCheckError):
    """Required fields are missing at calculation time (user-correctable)."""

    def __init__(self, missing_fields: Iterable[str]):
        self.missing_fields = list(missing_fields)
        super().__init__(f"Missing required fields: {', '.join(self.missing_fields)}")


class SessionNotFound(CardioCheckError):
    """Unknown or expired session identifier."""

    def __init__(self, session_id: Optional[str]):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}. Start a new session.")


class ParseAmbiguous(CardioCheckError):
    """An utterance could not be mapped to a single value for a field."""

    def __init__(self, field: str, utterance: str, reason: str = ""):
        self.field = field
        self.utterance = utterance
        self.reason = reason
        super().__init__(f"Could not interpret {utterance!r} for {field}: {reason}".rstrip(": "))


class RecordFrozen(CardioCheckError):
    """A frozen patient record was written to without being re-opened."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Patient record is frozen; re-open it before changing {field}")


class ExternalServiceUnavailable(CardioCheckError):
    """An extraction, ML, persistence or statistics call failed or timed out."""

    def __init__(self, service: str, reason: str = ""):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} unavailable: {reason}" if reason else f"{service} unavailable")


class InsufficientData(CardioCheckError):
    """No scoring model could produce a result."""

    def __init__(self, message: str = "No risk model could be applied to the available data"):
        super().__init__(message)

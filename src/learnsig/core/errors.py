"""Error taxonomy surfaced by the learning signal service."""

from __future__ import annotations


class LearningSignalError(Exception):
    """Base error for learning signal processing."""

    error_code = "internal_error"
    status_code = 500


class ValidationError(LearningSignalError):
    """Malformed or out-of-range input, reported with field-level details."""

    error_code = "validation_error"
    status_code = 400

    def __init__(self, message: str, details: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class EntitlementError(LearningSignalError):
    """Caller authorization context rejected by an upstream collaborator."""

    error_code = "entitlement_error"
    status_code = 403


class InternalError(LearningSignalError):
    """Storage failure or unexpected condition; no partial state is exposed."""

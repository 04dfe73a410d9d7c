"""
Custom exception hierarchy for submission verification.

Each exception type maps to a specific category of failure, so callers
(the HTTP layer, the CLI) can tell a lookup miss from incomplete input
from a storage outage without parsing messages.
"""

from __future__ import annotations


class VerificationError(Exception):
    """Base exception for all verification failures."""

    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ─── Lookup Misses ───────────────────────────────────────────────────


class NotFoundError(VerificationError):
    """A record required to proceed does not exist."""


class ExtractedRecordNotFound(NotFoundError):
    """No extraction has been performed for the submission yet."""

    def __init__(self, submission_id: str):
        super().__init__(
            "EXTRACTION_NOT_FOUND",
            f"No extracted data found for submission '{submission_id}'. "
            f"Extract the documents first.",
            {"submission_id": submission_id},
        )


class LandRecordNotFound(NotFoundError):
    """No canonical land record matches all six land-identity fields."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("LAND_RECORD_NOT_FOUND", message, details)


class ResultNotFound(NotFoundError):
    """The submission has never been reconciled."""

    def __init__(self, submission_id: str):
        super().__init__(
            "RESULT_NOT_FOUND",
            f"No verification result found for submission '{submission_id}'.",
            {"submission_id": submission_id},
        )


# ─── Input / Data Problems ───────────────────────────────────────────


class IncompleteInputError(VerificationError):
    """Extracted land-identity fields are not all present."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("INCOMPLETE_INPUT", message, details)


class CoordinatesUnavailableError(VerificationError):
    """The canonical land record was found but carries no coordinates."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("COORDINATES_UNAVAILABLE", message, details)


# ─── Infrastructure ──────────────────────────────────────────────────


class StoreFailureError(VerificationError):
    """A persistence or lookup I/O error. Never retried, never downgraded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("STORE_FAILURE", message, details)

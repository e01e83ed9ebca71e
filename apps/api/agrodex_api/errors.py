"""Error taxonomy shared by the pipeline stages.

Every error carries the ``stage`` of the pipeline it aborted so that clients can
tell "not registered" apart from "temporarily degraded".
"""

from typing import Any, Optional


class AgroDexError(Exception):
    """Base error rendered as a structured JSON response."""

    status_code = 500
    default_stage = "exception"

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = None,
        hint: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.hint = hint
        self.details = details

    def to_body(self) -> dict:
        """Render the error body (without correlation id)."""
        body = {"stage": self.stage, "error": self.message}
        if self.hint:
            body["hint"] = self.hint
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AgroDexError):
    """Malformed caller input."""

    status_code = 400
    default_stage = "validation"


class AuthenticationError(AgroDexError):
    """Missing or invalid bearer token."""

    status_code = 401
    default_stage = "auth"


class NotFoundError(AgroDexError):
    """Referenced record does not exist."""

    status_code = 404
    default_stage = "database_query"

    def to_body(self) -> dict:
        body = super().to_body()
        body["verified"] = False
        return body


class ConflictError(AgroDexError):
    """Operation conflicts with the current state of a record."""

    status_code = 409
    default_stage = "validation"


class ConfigurationError(AgroDexError):
    """Service is missing configuration it needs."""

    status_code = 500
    default_stage = "config"


class LedgerError(AgroDexError):
    """Base class for ledger gateway failures."""

    status_code = 502
    default_stage = "ledger"


class LedgerUnavailable(LedgerError):
    """Network failure or timeout talking to the ledger."""

    status_code = 504


class LedgerRejected(LedgerError):
    """Consensus network returned a non-success status."""

    status_code = 502

    def __init__(self, message: str, *, status: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class MetadataTooLarge(LedgerError):
    """Certificate metadata exceeds the on-ledger size ceiling."""

    status_code = 500


class NarrativeGenerationError(Exception):
    """Model call or response parsing failed.

    Never leaves the narrative gateway: callers receive a degraded result instead.
    """

    def __init__(self, message: str, *, timeout: bool = False):
        super().__init__(message)
        self.timeout = timeout


class StoreError(AgroDexError):
    """Persistence failure."""

    status_code = 500
    default_stage = "database_query"


class ConstraintViolation(StoreError):
    """Uniqueness or integrity constraint violated."""

    status_code = 409


class MissingSchema(StoreError):
    """Table or relation missing from the database."""

    status_code = 500


class PermissionDenied(StoreError):
    """Database role lacks the required grants."""

    status_code = 500


class StoreUnavailable(StoreError):
    """Database unreachable."""

    status_code = 500

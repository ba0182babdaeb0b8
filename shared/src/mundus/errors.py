"""Error kinds raised by the digest pipeline."""

from __future__ import annotations


class DigestError(Exception):
    """Base class for pipeline failures.

    ``attempts`` is filled in by the orchestrator once the retry policy has
    given up, so callers can see how many full runs were made.
    """

    kind = "digest_error"
    retryable = True

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        self.attempts = 1
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "attempts": self.attempts,
            "details": dict(self.details),
        }


class ValidationError(DigestError):
    """Empty or malformed input."""

    kind = "validation_error"
    retryable = False


class EmptyPoolError(ValidationError):
    """No usable candidate documents after normalization."""


class CollaboratorNotFoundError(DigestError):
    """Recipient (or another collaborator record) does not exist."""

    kind = "collaborator_not_found"
    retryable = False


class OracleTransportError(DigestError):
    """Network or HTTP failure while calling the oracle."""

    kind = "oracle_transport_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class OracleSchemaError(DigestError):
    """Oracle response did not match the declared structured shape."""

    kind = "oracle_schema_error"

    def __init__(self, message: str, *, slot: str | None = None, details: dict | None = None) -> None:
        super().__init__(message, details=details)
        self.slot = slot


class DegradedFilterWarning(UserWarning):
    """Pre-filter fell back to plain truncation. Logged, never raised."""

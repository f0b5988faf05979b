from __future__ import annotations

from jobingest.schemas.jobs import ValidationIssue


class IngestError(Exception):
    """Base ingestion error."""


class IngestValidationError(IngestError):
    """Raised when a record is rejected before any side effect."""

    def __init__(self, errors: list[ValidationIssue], message: str = "validation_failed") -> None:
        super().__init__(message)
        self.errors = errors

    def to_payload(self) -> list[dict[str, str | None]]:
        return [issue.model_dump() for issue in self.errors]

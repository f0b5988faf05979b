from __future__ import annotations

from datetime import datetime

from jobingest.core.clock import as_utc, utcnow
from jobingest.schemas.jobs import JobDTO, ValidationIssue, ValidationResult


class JobValidator:
    """Structural checks run before any side effect.

    Every rule is independent; all violations are collected so a producer can fix a record in one pass.
    """

    def validate(self, dto: JobDTO, *, now: datetime | None = None) -> ValidationResult:
        current = now or utcnow()
        errors: list[ValidationIssue] = []

        if not dto.title or not dto.title.strip():
            errors.append(ValidationIssue(code="TITLE_REQUIRED", message="title required", field="title"))

        if dto.company is None or not dto.company.name or not dto.company.name.strip():
            errors.append(
                ValidationIssue(code="COMPANY_REQUIRED", message="company.name required", field="company.name")
            )

        if dto.location is None or (not dto.location.country and not dto.location.remote_type):
            errors.append(
                ValidationIssue(
                    code="LOCATION_REQUIRED",
                    message="location.country or location.remote_type required",
                    field="location",
                )
            )

        posted_at = as_utc(dto.posted_at)
        if posted_at is None:
            errors.append(ValidationIssue(code="POSTED_AT_REQUIRED", message="posted_at required", field="posted_at"))
        elif posted_at > current:
            errors.append(ValidationIssue(code="POSTED_AT_FUTURE", message="posted_at in future", field="posted_at"))

        salary = dto.salary
        if salary is not None and salary.min is not None and salary.max is not None and salary.min > salary.max:
            errors.append(ValidationIssue(code="SALARY_RANGE_INVALID", message="salary min > max", field="salary"))

        expires_at = as_utc(dto.expires_at)
        if expires_at is not None and posted_at is not None and expires_at < posted_at:
            errors.append(
                ValidationIssue(code="EXPIRES_AT_LT_POSTED", message="expires_at < posted_at", field="expires_at")
            )

        return ValidationResult(ok=not errors, errors=errors)

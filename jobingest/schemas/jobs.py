from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

JobSource = Literal[
    "indeed",
    "linkedin",
    "glassdoor",
    "naukri",
    "naukri_gulf",
    "gulf_talent",
    "company_site",
    "manual",
]
RemoteType = Literal["onsite", "hybrid", "remote"]
SalaryPeriod = Literal["hour", "day", "month", "year"]
Seniority = Literal["entry", "mid", "senior", "lead", "director", "vp", "cxo", "unknown"]


class _CamelModel(BaseModel):
    # Producers send camelCase keys; Python code uses the snake_case field names.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class CompanyRef(_CamelModel):
    name: str | None = None
    domain: str | None = None


class LocationInfo(_CamelModel):
    city: str | None = None
    state: str | None = None
    country: str | None = None
    remote_type: RemoteType | None = None


class SalaryInfo(_CamelModel):
    min: float | None = None
    max: float | None = None
    currency: str | None = None
    period: SalaryPeriod | None = None
    normalized_annual_min: float | None = None
    normalized_annual_max: float | None = None
    normalized_currency: str | None = None


class JobDTO(_CamelModel):
    source: JobSource
    external_id: str | None = None
    canonical_url: str | None = None
    title: str | None = None
    company: CompanyRef | None = None
    location: LocationInfo | None = None
    salary: SalaryInfo | None = None
    seniority: Seniority | None = None
    description: str | None = None
    skills: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    posted_at: datetime | None = None
    expires_at: datetime | None = None
    application_count: int | None = None
    referral_available: bool | None = None

    @field_validator("skills", "benefits", mode="before")
    @classmethod
    def null_list_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class NormalizedJob(_CamelModel):
    source: JobSource
    external_id: str | None = None
    canonical_url: str | None = None
    title: str
    company: CompanyRef
    location: LocationInfo
    salary: SalaryInfo | None = None
    seniority: Seniority = "unknown"
    description: str | None = None
    skills: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    posted_at: datetime
    expires_at: datetime | None = None
    application_count: int | None = None
    referral_available: bool | None = None


class CanonicalJob(NormalizedJob):
    id: str | None = None
    hash: str
    composite_key: str
    sanitized_description: str | None = None
    first_seen_at: datetime
    last_seen_at: datetime
    last_source: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class JobSearchFilters(_CamelModel):
    source: JobSource | None = None
    country: str | None = None
    city: str | None = None
    seniority: Seniority | None = None
    skills: list[str] = Field(default_factory=list)
    posted_from: datetime | None = None
    posted_to: datetime | None = None


class ValidationIssue(BaseModel):
    code: str
    message: str
    field: str | None = None


class ValidationResult(BaseModel):
    ok: bool
    errors: list[ValidationIssue] = Field(default_factory=list)


class IngestResult(BaseModel):
    composite_key: str
    upserted_id: str | None = None
    deduped: bool
    updated_fields: list[str] = Field(default_factory=list)


class BulkItemResult(BaseModel):
    index: int
    ok: bool
    result: IngestResult | None = None
    error: str | None = None
    details: list[ValidationIssue] = Field(default_factory=list)


class BulkIngestResult(BaseModel):
    success: int = 0
    failed: int = 0
    results: list[BulkItemResult] = Field(default_factory=list)


class AuditEntry(BaseModel):
    job_id: str
    action: Literal["create", "update", "delete"]
    actor: str = "scraper"
    source: str | None = None
    diff: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

"""Single-record ingestion: validate, normalize, redact, key, enrich, persist, then best-effort side effects.

Persistence is the durability boundary. Anything that fails after the upsert
(hot-list warming, audit append) is logged and swallowed so the caller still
sees the persisted result.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from jobingest.core.clock import utcnow
from jobingest.core.config import Settings
from jobingest.core.telemetry import pipeline_step
from jobingest.pipelines.errors import IngestValidationError
from jobingest.schemas.jobs import AuditEntry, CanonicalJob, IngestResult, JobDTO, ValidationIssue
from jobingest.services.audit import AuditLogger
from jobingest.services.cache import HotListSummary, HotListWarmer, JobCache
from jobingest.services.dedupe import JobDeduplicator
from jobingest.services.enricher import JobEnricher
from jobingest.services.indexer import JobIndexer
from jobingest.services.normalizer import JobNormalizer
from jobingest.services.pii import PIIRedactor
from jobingest.services.repository import JobRepository, UpsertResult
from jobingest.services.validator import JobValidator

logger = logging.getLogger(__name__)


class IngestJobPipeline:
    def __init__(
        self,
        *,
        repository: JobRepository,
        hot_lists: HotListWarmer,
        audit: AuditLogger,
        indexer: JobIndexer | None = None,
        validator: JobValidator | None = None,
        normalizer: JobNormalizer | None = None,
        redactor: PIIRedactor | None = None,
        deduplicator: JobDeduplicator | None = None,
        enricher: JobEnricher | None = None,
        ensure_indexes: bool = True,
    ) -> None:
        self.repository = repository
        self.hot_lists = hot_lists
        self.audit = audit
        self.indexer = indexer or JobIndexer(repository)
        self.validator = validator or JobValidator()
        self.normalizer = normalizer or JobNormalizer()
        self.redactor = redactor or PIIRedactor()
        self.deduplicator = deduplicator or JobDeduplicator()
        self.enricher = enricher or JobEnricher()
        self.ensure_indexes = ensure_indexes

    async def startup(self) -> None:
        if self.ensure_indexes:
            await self.indexer.ensure_indexes()

    def prepare(self, payload: JobDTO | Mapping[str, Any]) -> CanonicalJob:
        """Run the pure steps and return the document to persist. Raises IngestValidationError."""
        dto = coerce_job_dto(payload)
        validation = self.validator.validate(dto)
        if not validation.ok:
            raise IngestValidationError(validation.errors)

        job = self.normalizer.normalize(dto)
        redacted_description = self.redactor.redact(job.description)
        job = job.model_copy(update={"description": redacted_description})

        job_hash = self.deduplicator.build_hash(job)
        composite_key = self.deduplicator.composite_key(job, job_hash)
        job = self.enricher.enrich(job)

        now = utcnow()
        return CanonicalJob(
            **job.model_dump(),
            hash=job_hash,
            composite_key=composite_key,
            sanitized_description=redacted_description,
            first_seen_at=now,
            last_seen_at=now,
            last_source=job.source,
        )

    async def process(self, payload: JobDTO | Mapping[str, Any]) -> IngestResult:
        with pipeline_step("process") as span:
            with pipeline_step("prepare"):
                document = self.prepare(payload)
            span.set_attribute("job.composite_key", document.composite_key)
            span.set_attribute("job.source", document.source)

            if self.ensure_indexes:
                await self.indexer.ensure_indexes()

            with pipeline_step("upsert", composite_key=document.composite_key):
                upsert = await self.repository.upsert_by_composite_key(document)
            span.set_attribute("job.created", upsert.created)
            logger.info(
                "job ingested composite_key=%s created=%s updated_fields=%s",
                document.composite_key,
                upsert.created,
                ",".join(upsert.updated_fields) or "-",
            )

            await self._best_effort(
                "warm_hot_lists",
                document.composite_key,
                lambda: self.hot_lists.warm_hot_lists(
                    HotListSummary(
                        source=document.source,
                        country=document.location.country,
                        city=document.location.city,
                        skills=tuple(document.skills),
                    )
                ),
            )
            if upsert.created or upsert.updated_fields:
                await self._best_effort(
                    "audit_append",
                    document.composite_key,
                    lambda: self.audit.append(_audit_entry_for(upsert, source=document.source)),
                )

            return IngestResult(
                composite_key=document.composite_key,
                upserted_id=upsert.job.id,
                deduped=not upsert.created,
                updated_fields=upsert.updated_fields,
            )

    async def _best_effort(self, step: str, composite_key: str, operation: Callable[[], Awaitable[Any]]) -> bool:
        try:
            with pipeline_step(step, composite_key=composite_key):
                await operation()
        except Exception:
            logger.exception("best-effort step failed step=%s composite_key=%s", step, composite_key)
            return False
        return True


def coerce_job_dto(payload: JobDTO | Mapping[str, Any]) -> JobDTO:
    if isinstance(payload, JobDTO):
        return payload
    try:
        return JobDTO.model_validate(payload)
    except ValidationError as exc:
        raise IngestValidationError(
            [
                ValidationIssue(
                    code="INVALID_PAYLOAD",
                    message=error["msg"],
                    field=".".join(str(part) for part in error["loc"]) or None,
                )
                for error in exc.errors()
            ]
        ) from exc


def build_pipeline(settings: Settings, *, repository: JobRepository, cache: JobCache) -> IngestJobPipeline:
    return IngestJobPipeline(
        repository=repository,
        hot_lists=HotListWarmer(cache, ttl_seconds=settings.cache_hot_list_ttl_seconds),
        audit=AuditLogger(repository, enabled=settings.audit_enabled),
        normalizer=JobNormalizer(default_country=settings.default_country, base_currency=settings.base_currency),
        redactor=PIIRedactor(enabled=settings.pii_enabled, fields=settings.pii_redacted_field_list),
        ensure_indexes=settings.ensure_indexes_on_start,
    )


def _audit_entry_for(upsert: UpsertResult, *, source: str) -> AuditEntry:
    if upsert.job.id is None:
        raise ValueError("persisted job has no id")
    return AuditEntry(
        job_id=upsert.job.id,
        action="create" if upsert.created else "update",
        source=source,
        diff={"updated_fields": list(upsert.updated_fields)},
        created_at=utcnow(),
    )

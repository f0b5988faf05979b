from __future__ import annotations

from collections import deque
from typing import Sequence
from uuid import uuid4

from jobingest.core.clock import utcnow
from jobingest.schemas.jobs import AuditEntry, CanonicalJob, JobSearchFilters
from jobingest.services.indexer import IndexDefinition
from jobingest.services.repository import (
    BulkUpsertResult,
    RepositoryConflictError,
    UpsertResult,
    merge_canonical_job,
    supplied_fields,
)


class InMemoryJobRepository:
    """Process-local job store for tests and dry runs.

    Methods never await between reading and writing, so under asyncio each call
    is atomic and the dict key plays the role of the unique constraint.
    """

    def __init__(self) -> None:
        self.jobs: dict[str, CanonicalJob] = {}
        self.audit_entries: deque[AuditEntry] = deque()
        self.index_calls: list[tuple[str, ...]] = []

    async def create_indexes(self, indexes: Sequence[IndexDefinition]) -> None:
        self.index_calls.append(tuple(index.name for index in indexes))

    async def upsert_by_composite_key(self, job: CanonicalJob) -> UpsertResult:
        if not job.composite_key:
            raise RepositoryConflictError("composite_key required")

        now = utcnow()
        existing = self.jobs.get(job.composite_key)
        if existing is None:
            created = job.model_copy(update={"id": str(uuid4()), "created_at": now, "updated_at": now})
            self.jobs[job.composite_key] = created
            return UpsertResult(job=created, updated_fields=supplied_fields(job), created=True)

        updates, updated_fields = merge_canonical_job(existing, job)
        bookkeeping = {"last_seen_at": now, "last_source": job.source}
        if updated_fields:
            bookkeeping["updated_at"] = now
        stored = existing.model_copy(update={**updates, **bookkeeping})
        self.jobs[job.composite_key] = stored
        return UpsertResult(job=stored, updated_fields=updated_fields, created=False)

    async def bulk_upsert(self, jobs: Sequence[CanonicalJob]) -> BulkUpsertResult:
        result = BulkUpsertResult()
        now = utcnow()
        for job in jobs:
            existing = self.jobs.get(job.composite_key)
            if existing is None:
                self.jobs[job.composite_key] = job.model_copy(
                    update={"id": str(uuid4()), "last_seen_at": now, "created_at": now, "updated_at": now}
                )
                result.upserted += 1
                continue
            self.jobs[job.composite_key] = existing.model_copy(update={"last_seen_at": now})
            result.matched += 1
            result.modified += 1
        return result

    async def get_by_composite_key(self, composite_key: str) -> CanonicalJob | None:
        return self.jobs.get(composite_key)

    async def search_by_filters(self, filters: JobSearchFilters, limit: int = 50) -> list[CanonicalJob]:
        wanted_skills = set(filters.skills)
        matches = []
        for job in self.jobs.values():
            if filters.source and job.source != filters.source:
                continue
            if filters.country and (job.location.country or "") != filters.country.strip().upper():
                continue
            if filters.city and job.location.city != filters.city.strip():
                continue
            if filters.seniority and job.seniority != filters.seniority:
                continue
            if wanted_skills and not wanted_skills.intersection(job.skills):
                continue
            if filters.posted_from is not None and job.posted_at < filters.posted_from:
                continue
            if filters.posted_to is not None and job.posted_at > filters.posted_to:
                continue
            matches.append(job)
        matches.sort(key=lambda job: job.posted_at, reverse=True)
        return matches[: max(1, limit)]

    async def append_audit(self, entry: AuditEntry) -> None:
        if entry.created_at is None:
            entry = entry.model_copy(update={"created_at": utcnow()})
        self.audit_entries.append(entry)

    async def list_audit_entries(self, job_id: str) -> list[AuditEntry]:
        return [entry for entry in self.audit_entries if entry.job_id == job_id]

    async def close(self) -> None:
        return None

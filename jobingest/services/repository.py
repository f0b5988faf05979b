from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Protocol, Sequence

import asyncpg  # type: ignore[import-untyped]

from jobingest.core.clock import utcnow
from jobingest.core.config import get_settings
from jobingest.core.text import coerce_text
from jobingest.schemas.jobs import AuditEntry, CanonicalJob, JobSearchFilters
from jobingest.services.indexer import IndexDefinition

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryConflictError(RepositoryError):
    """Raised when a unique-key race cannot be resolved into an update."""


@dataclass(slots=True)
class UpsertResult:
    job: CanonicalJob
    updated_fields: list[str]
    created: bool


@dataclass(slots=True)
class BulkUpsertResult:
    matched: int = 0
    modified: int = 0
    upserted: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)


class JobRepository(Protocol):
    async def create_indexes(self, indexes: Sequence[IndexDefinition]) -> None: ...

    async def upsert_by_composite_key(self, job: CanonicalJob) -> UpsertResult: ...

    async def bulk_upsert(self, jobs: Sequence[CanonicalJob]) -> BulkUpsertResult: ...

    async def get_by_composite_key(self, composite_key: str) -> CanonicalJob | None: ...

    async def search_by_filters(self, filters: JobSearchFilters, limit: int = 50) -> list[CanonicalJob]: ...

    async def append_audit(self, entry: AuditEntry) -> None: ...

    async def list_audit_entries(self, job_id: str) -> list[AuditEntry]: ...

    async def close(self) -> None: ...


# Fill-or-improve: overwritten only when the stored value is missing or, for strings, strictly shorter.
MERGE_SCALAR_FIELDS = (
    "title",
    "company",
    "location",
    "salary",
    "seniority",
    "description",
    "sanitized_description",
)
MERGE_SET_FIELDS = ("skills", "benefits")
STORE_MANAGED_FIELDS = {"id", "created_at", "updated_at"}


def supplied_fields(job: CanonicalJob) -> list[str]:
    payload = job.model_dump(exclude=STORE_MANAGED_FIELDS)
    return [name for name, value in payload.items() if value is not None and value != [] and value != {}]


def merge_canonical_job(existing: CanonicalJob, incoming: CanonicalJob) -> tuple[dict[str, Any], list[str]]:
    """Compute the field updates an incoming record may apply to a stored one.

    Returns the new values keyed by field name plus the ordered list of changed
    fields. Bookkeeping columns (last_seen_at, last_source) are never part of
    the result; callers always touch them.
    """
    updates: dict[str, Any] = {}
    updated_fields: list[str] = []

    for name in MERGE_SCALAR_FIELDS:
        value = getattr(incoming, name)
        if _is_improvement(getattr(existing, name), value):
            updates[name] = value
            updated_fields.append(name)

    for name in MERGE_SET_FIELDS:
        current: list[str] = list(getattr(existing, name) or [])
        known = {item.casefold() for item in current}
        additions: list[str] = []
        for item in getattr(incoming, name) or []:
            key = item.casefold()
            if key in known:
                continue
            known.add(key)
            additions.append(item)
        if additions:
            updates[name] = current + additions
            updated_fields.append(name)

    if incoming.expires_at is not None and (existing.expires_at is None or incoming.expires_at > existing.expires_at):
        updates["expires_at"] = incoming.expires_at
        updated_fields.append("expires_at")

    return updates, updated_fields


def _is_improvement(current: Any, value: Any) -> bool:
    if value is None:
        return False
    if current is None:
        return True
    if isinstance(value, str) and isinstance(current, str):
        return len(value) > len(current)
    return False


_JOB_COLUMNS = """
              id::text as id,
              composite_key,
              hash,
              source,
              external_id,
              canonical_url,
              title,
              company,
              location,
              salary,
              seniority,
              description,
              sanitized_description,
              skills,
              benefits,
              posted_at,
              expires_at,
              application_count,
              referral_available,
              first_seen_at,
              last_seen_at,
              last_source,
              created_at,
              updated_at
"""

_INSERT_COLUMNS = (
    "composite_key",
    "hash",
    "source",
    "external_id",
    "canonical_url",
    "title",
    "company",
    "location",
    "salary",
    "seniority",
    "description",
    "sanitized_description",
    "skills",
    "benefits",
    "posted_at",
    "expires_at",
    "application_count",
    "referral_available",
    "first_seen_at",
    "last_seen_at",
    "last_source",
)

_COLUMN_CASTS = {
    "company": "::jsonb",
    "location": "::jsonb",
    "salary": "::jsonb",
    "skills": "::text[]",
    "benefits": "::text[]",
}

_INSERT_VALUES_SQL = ", ".join(
    f"${index}{_COLUMN_CASTS.get(name, '')}" for index, name in enumerate(_INSERT_COLUMNS, start=1)
)


class PostgresJobRepository:
    def __init__(self, database_url: str | None, min_pool_size: int, max_pool_size: int) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def get_pool(self) -> asyncpg.Pool:
        return await self._get_pool()

    async def create_indexes(self, indexes: Sequence[IndexDefinition]) -> None:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            for index in indexes:
                await conn.execute(index.to_sql("jobs"))

    async def upsert_by_composite_key(self, job: CanonicalJob) -> UpsertResult:
        if not job.composite_key:
            raise RepositoryConflictError("composite_key required")

        pool = await self._get_pool()
        now = utcnow()
        async with pool.acquire() as conn:
            async with conn.transaction():
                # A concurrent writer that wins the insert makes this return nothing; we then merge into its row.
                row = await conn.fetchrow(
                    f"""
                    insert into jobs ({", ".join(_INSERT_COLUMNS)})
                    values ({_INSERT_VALUES_SQL})
                    on conflict (composite_key) do nothing
                    returning {_JOB_COLUMNS}
                    """,
                    *self._insert_params(job),
                )
                if row:
                    return UpsertResult(job=self._row_to_job(row), updated_fields=supplied_fields(job), created=True)

                existing_row = await conn.fetchrow(
                    f"""
                    select {_JOB_COLUMNS}
                    from jobs
                    where composite_key = $1
                    for update
                    """,
                    job.composite_key,
                )
                if not existing_row:
                    raise RepositoryConflictError("failed to resolve existing job after conflict")

                existing = self._row_to_job(existing_row)
                updates, updated_fields = merge_canonical_job(existing, job)

                params: list[Any] = [job.composite_key, now, job.source]
                assignments = ["last_seen_at = $2", "last_source = $3"]
                if updated_fields:
                    assignments.append("updated_at = $2")
                for name, value in updates.items():
                    params.append(self._encode_column(name, value))
                    assignments.append(f"{name} = ${len(params)}{_COLUMN_CASTS.get(name, '')}")

                updated_row = await conn.fetchrow(
                    f"""
                    update jobs
                    set {", ".join(assignments)}
                    where composite_key = $1
                    returning {_JOB_COLUMNS}
                    """,
                    *params,
                )
                if not updated_row:
                    raise RepositoryConflictError("job disappeared during update")

                return UpsertResult(job=self._row_to_job(updated_row), updated_fields=updated_fields, created=False)

    async def bulk_upsert(self, jobs: Sequence[CanonicalJob]) -> BulkUpsertResult:
        result = BulkUpsertResult()
        if not jobs:
            return result

        pool = await self._get_pool()
        now = utcnow()
        async with pool.acquire() as conn:
            # Unordered and non-transactional: one bad row must not discard the rest of the batch.
            for job in jobs:
                try:
                    inserted = await conn.fetchval(
                        f"""
                        insert into jobs ({", ".join(_INSERT_COLUMNS)})
                        values ({_INSERT_VALUES_SQL})
                        on conflict (composite_key) do update
                        set last_seen_at = excluded.last_seen_at
                        returning (xmax = 0) as inserted
                        """,
                        *self._insert_params(job.model_copy(update={"last_seen_at": now})),
                    )
                except asyncpg.PostgresError as exc:
                    result.failed += 1
                    result.errors.append({"composite_key": job.composite_key, "error": str(exc)})
                    logger.warning("bulk upsert failed composite_key=%s error=%s", job.composite_key, exc)
                    continue

                if inserted:
                    result.upserted += 1
                else:
                    result.matched += 1
                    result.modified += 1
        return result

    async def get_by_composite_key(self, composite_key: str) -> CanonicalJob | None:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            select {_JOB_COLUMNS}
            from jobs
            where composite_key = $1
            """,
            composite_key,
        )
        return self._row_to_job(row) if row else None

    async def search_by_filters(self, filters: JobSearchFilters, limit: int = 50) -> list[CanonicalJob]:
        pool = await self._get_pool()
        conditions: list[str] = []
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        if filters.source:
            conditions.append(f"source = {bind(filters.source)}")
        country = coerce_text(filters.country)
        if country:
            conditions.append(f"location->>'country' = {bind(country.upper())}")
        city = coerce_text(filters.city)
        if city:
            conditions.append(f"location->>'city' = {bind(city)}")
        if filters.seniority:
            conditions.append(f"seniority = {bind(filters.seniority)}")
        if filters.skills:
            conditions.append(f"skills && {bind(list(filters.skills))}::text[]")
        if filters.posted_from is not None:
            conditions.append(f"posted_at >= {bind(filters.posted_from)}")
        if filters.posted_to is not None:
            conditions.append(f"posted_at <= {bind(filters.posted_to)}")

        where_sql = " and ".join(conditions) if conditions else "true"
        limit_token = bind(max(1, limit))
        rows = await pool.fetch(
            f"""
            select {_JOB_COLUMNS}
            from jobs
            where {where_sql}
            order by posted_at desc, id asc
            limit {limit_token}
            """,
            *params,
        )
        return [self._row_to_job(row) for row in rows]

    async def append_audit(self, entry: AuditEntry) -> None:
        pool = await self._get_pool()
        await pool.execute(
            """
            insert into job_audit (job_id, action, actor, source, diff, created_at)
            values ($1::uuid, $2, $3, $4, $5::jsonb, $6)
            """,
            entry.job_id,
            entry.action,
            entry.actor,
            entry.source,
            json.dumps(entry.diff),
            entry.created_at or utcnow(),
        )

    async def list_audit_entries(self, job_id: str) -> list[AuditEntry]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select job_id::text as job_id, action, actor, source, diff, created_at
            from job_audit
            where job_id = $1::uuid
            order by created_at asc, id asc
            """,
            job_id,
        )
        return [
            AuditEntry(
                job_id=row["job_id"],
                action=row["action"],
                actor=row["actor"],
                source=row["source"],
                diff=self._coerce_json_dict(row["diff"]),
                created_at=row["created_at"],
            )
            for row in rows
        ]

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("JOBINGEST_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=15,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    def _insert_params(self, job: CanonicalJob) -> list[Any]:
        return [self._encode_column(name, getattr(job, name)) for name in _INSERT_COLUMNS]

    @staticmethod
    def _encode_column(name: str, value: Any) -> Any:
        if value is None:
            return None
        if _COLUMN_CASTS.get(name) == "::jsonb":
            return json.dumps(value.model_dump(mode="json") if hasattr(value, "model_dump") else value)
        if _COLUMN_CASTS.get(name) == "::text[]":
            return list(value)
        return value

    def _row_to_job(self, row: asyncpg.Record) -> CanonicalJob:
        salary = self._coerce_json_dict(row["salary"])
        return CanonicalJob(
            id=row["id"],
            composite_key=row["composite_key"],
            hash=row["hash"],
            source=row["source"],
            external_id=row["external_id"],
            canonical_url=row["canonical_url"],
            title=row["title"],
            company=self._coerce_json_dict(row["company"]),
            location=self._coerce_json_dict(row["location"]),
            salary=salary or None,
            seniority=row["seniority"],
            description=row["description"],
            sanitized_description=row["sanitized_description"],
            skills=list(row["skills"] or []),
            benefits=list(row["benefits"] or []),
            posted_at=row["posted_at"],
            expires_at=row["expires_at"],
            application_count=row["application_count"],
            referral_available=row["referral_available"],
            first_seen_at=row["first_seen_at"],
            last_seen_at=row["last_seen_at"],
            last_source=row["last_source"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if isinstance(value, dict):
            return value
        return {}


@lru_cache
def get_repository() -> PostgresJobRepository:
    settings = get_settings()
    return PostgresJobRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
    )

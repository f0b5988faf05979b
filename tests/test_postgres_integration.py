from __future__ import annotations

import asyncio
import os
from collections.abc import Coroutine
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import asyncpg  # type: ignore[import-untyped]
import pytest

from jobingest.pipelines.ingest import IngestJobPipeline
from jobingest.schemas.jobs import IngestResult, JobDTO, JobSearchFilters
from jobingest.services.audit import AuditLogger
from jobingest.services.cache import HotListWarmer, InMemoryCache, PostgresCache
from jobingest.services.repository import PostgresJobRepository

MIGRATION_PATH = Path(__file__).resolve().parents[1] / "db" / "migrations" / "0001_job_ingest.sql"
POSTED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("JOBINGEST_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require JOBINGEST_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture(autouse=True)
def reset_tables(database_url: str) -> None:
    _run(_reset_schema(database_url))


def test_reingest_is_deduped_and_audited_once(database_url: str) -> None:
    async def scenario() -> tuple[IngestResult, IngestResult, int]:
        repository = _repository(database_url)
        try:
            pipeline = _pipeline(repository)
            first = await pipeline.process(_dto())
            second = await pipeline.process(_dto())
            assert first.upserted_id is not None
            entries = await repository.list_audit_entries(first.upserted_id)
            return first, second, len(entries)
        finally:
            await repository.close()

    first, second, audit_count = _run(scenario())

    assert first.deduped is False
    assert second.deduped is True
    assert second.updated_fields == []
    assert second.upserted_id == first.upserted_id
    assert audit_count == 1
    assert _run(_fetchval(database_url, "select count(*) from jobs")) == 1


def test_concurrent_first_sightings_create_exactly_one_record(database_url: str) -> None:
    async def scenario() -> list[IngestResult]:
        repository = _repository(database_url)
        try:
            pipeline = _pipeline(repository)
            await pipeline.startup()
            return list(await asyncio.gather(*(pipeline.process(_dto()) for _ in range(5))))
        finally:
            await repository.close()

    results = _run(scenario())

    assert sum(1 for result in results if not result.deduped) == 1
    assert len({result.upserted_id for result in results}) == 1
    assert _run(_fetchval(database_url, "select count(*) from jobs")) == 1


def test_stored_record_round_trips_and_is_searchable(database_url: str) -> None:
    async def scenario() -> tuple[Any, list[Any]]:
        repository = _repository(database_url)
        try:
            pipeline = _pipeline(repository)
            result = await pipeline.process(
                _dto(salary={"min": 50000, "max": 70000, "currency": "usd", "period": "year"}, skills=["Python"])
            )
            stored = await repository.get_by_composite_key(result.composite_key)
            found = await repository.search_by_filters(JobSearchFilters(country="IN", skills=["Python"]))
            return stored, found
        finally:
            await repository.close()

    stored, found = _run(scenario())

    assert stored is not None
    assert stored.company.name == "Acme"
    assert stored.salary.normalized_annual_max == 70000
    assert stored.salary.normalized_currency == "USD"
    assert stored.posted_at == POSTED_AT
    assert [job.composite_key for job in found] == [stored.composite_key]


def test_bulk_upsert_counts_inserts_and_matches(database_url: str) -> None:
    async def scenario() -> tuple[int, int, int, int]:
        repository = _repository(database_url)
        try:
            pipeline = _pipeline(repository)
            documents = [pipeline.prepare(_dto(external_id=f"ext-{index}")) for index in range(3)]
            await repository.bulk_upsert(documents[:1])
            result = await repository.bulk_upsert(documents)
            return result.matched, result.modified, result.upserted, result.failed
        finally:
            await repository.close()

    assert _run(scenario()) == (1, 1, 2, 0)
    assert _run(_fetchval(database_url, "select count(*) from jobs")) == 3


def test_postgres_cache_round_trip(database_url: str) -> None:
    async def scenario() -> tuple[Any, Any]:
        repository = _repository(database_url)
        try:
            cache = PostgresCache(repository)
            await cache.set_json("jobs:latest:indeed", {"t": 1}, ttl_seconds=60)
            await cache.set_json("jobs:skill:expired", {"t": 1}, ttl_seconds=0)
            return await cache.get_json("jobs:latest:indeed"), await cache.get_json("jobs:skill:expired")
        finally:
            await repository.close()

    live, expired = _run(scenario())

    assert live == {"t": 1}
    assert expired is None


def _repository(database_url: str) -> PostgresJobRepository:
    return PostgresJobRepository(database_url=database_url, min_pool_size=1, max_pool_size=5)


def _pipeline(repository: PostgresJobRepository) -> IngestJobPipeline:
    return IngestJobPipeline(
        repository=repository,
        hot_lists=HotListWarmer(InMemoryCache(), ttl_seconds=120),
        audit=AuditLogger(repository),
    )


def _dto(**overrides: object) -> JobDTO:
    payload: dict[str, object] = {
        "source": "indeed",
        "external_id": "ext-1",
        "title": "Backend Engineer",
        "company": {"name": "Acme"},
        "location": {"city": "Pune", "country": "IN"},
        "description": "Build services",
        "posted_at": POSTED_AT,
    }
    payload.update(overrides)
    return JobDTO(**payload)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


async def _reset_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute(MIGRATION_PATH.read_text(encoding="utf-8"))
        await conn.execute("truncate table job_audit, jobs, cache_entries restart identity cascade")
    finally:
        await conn.close()


async def _fetchval(database_url: str, query: str, *args: Any) -> Any:
    conn = await asyncpg.connect(database_url)
    try:
        return await conn.fetchval(query, *args)
    finally:
        await conn.close()

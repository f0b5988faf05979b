from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from jobingest.schemas.jobs import CanonicalJob, CompanyRef, JobSearchFilters, LocationInfo, SalaryInfo
from jobingest.services.repository import UpsertResult, merge_canonical_job
from jobingest.services.store import InMemoryJobRepository

POSTED_AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_upsert_creates_then_reports_no_op_for_identical_record() -> None:
    repository = InMemoryJobRepository()

    async def run() -> tuple[UpsertResult, UpsertResult]:
        first = await repository.upsert_by_composite_key(_job())
        second = await repository.upsert_by_composite_key(_job())
        return first, second

    first, second = asyncio.run(run())

    assert first.created is True
    assert {"composite_key", "hash", "title", "company", "location", "posted_at"} <= set(first.updated_fields)
    assert "id" not in first.updated_fields
    assert second.created is False
    assert second.updated_fields == []
    assert second.job.id == first.job.id
    assert second.job.first_seen_at == first.job.first_seen_at
    assert second.job.last_seen_at >= first.job.last_seen_at
    assert len(repository.jobs) == 1


def test_upsert_fill_or_improve_never_regresses_description() -> None:
    repository = InMemoryJobRepository()
    longer = "a much longer and more complete description"

    async def run() -> list[UpsertResult]:
        return [
            await repository.upsert_by_composite_key(_job(description="short")),
            await repository.upsert_by_composite_key(_job(description=longer)),
            await repository.upsert_by_composite_key(_job(description="x")),
        ]

    _, improved, regressed = asyncio.run(run())

    assert improved.updated_fields == ["description", "sanitized_description"]
    assert regressed.updated_fields == []
    assert repository.jobs["indeed:1"].description == longer


def test_upsert_moves_expiry_forward_only() -> None:
    repository = InMemoryJobRepository()
    later = POSTED_AT + timedelta(days=30)
    earlier = POSTED_AT + timedelta(days=10)

    async def run() -> UpsertResult:
        await repository.upsert_by_composite_key(_job(expires_at=later))
        return await repository.upsert_by_composite_key(_job(expires_at=earlier))

    result = asyncio.run(run())

    assert result.updated_fields == []
    assert repository.jobs["indeed:1"].expires_at == later


def test_merge_unions_sets_and_fills_missing_objects() -> None:
    existing = _job(skills=["React", "node"], salary=None)
    incoming = _job(
        skills=["react", "GraphQL"],
        benefits=["bonus"],
        salary=SalaryInfo(min=10, max=20, period="hour"),
        expires_at=POSTED_AT + timedelta(days=5),
    )

    updates, updated_fields = merge_canonical_job(existing, incoming)

    assert updated_fields == ["salary", "skills", "benefits", "expires_at"]
    assert updates["skills"] == ["React", "node", "GraphQL"]
    assert updates["benefits"] == ["bonus"]


def test_merge_keeps_existing_objects_and_shorter_strings() -> None:
    existing = _job(title="Senior Backend Engineer", salary=SalaryInfo(min=1, max=2))
    incoming = _job(
        title="Backend Engineer",
        company=CompanyRef(name="Acme Corporation International"),
        salary=SalaryInfo(min=100, max=200),
    )

    updates, updated_fields = merge_canonical_job(existing, incoming)

    assert updates == {}
    assert updated_fields == []


def test_bulk_upsert_inserts_absent_and_touches_existing() -> None:
    repository = InMemoryJobRepository()

    async def run() -> tuple[int, int, int, int]:
        await repository.upsert_by_composite_key(_job(composite_key="indeed:1"))
        before = repository.jobs["indeed:1"].last_seen_at
        result = await repository.bulk_upsert(
            [
                _job(composite_key="indeed:1", description="a much longer description that is ignored"),
                _job(composite_key="indeed:2"),
                _job(composite_key="indeed:3"),
            ]
        )
        assert repository.jobs["indeed:1"].last_seen_at >= before
        return result.matched, result.modified, result.upserted, result.failed

    assert asyncio.run(run()) == (1, 1, 2, 0)
    assert repository.jobs["indeed:1"].description == "Build services"
    assert len(repository.jobs) == 3


def test_search_by_filters_matches_location_skills_and_window() -> None:
    repository = InMemoryJobRepository()

    async def run() -> list[str]:
        await repository.upsert_by_composite_key(_job(composite_key="indeed:1", skills=["python"]))
        await repository.upsert_by_composite_key(
            _job(composite_key="indeed:2", skills=["python"], posted_at=POSTED_AT + timedelta(days=1))
        )
        await repository.upsert_by_composite_key(
            _job(composite_key="indeed:3", skills=["java"], location=LocationInfo(city="Dubai", country="AE"))
        )
        found = await repository.search_by_filters(
            JobSearchFilters(country="in", city="Pune", skills=["python"], posted_from=POSTED_AT)
        )
        return [job.composite_key for job in found]

    assert asyncio.run(run()) == ["indeed:2", "indeed:1"]


def _job(**overrides: object) -> CanonicalJob:
    payload: dict[str, object] = {
        "source": "indeed",
        "external_id": "1",
        "title": "Backend Engineer",
        "company": CompanyRef(name="Acme"),
        "location": LocationInfo(city="Pune", country="IN", remote_type="onsite"),
        "seniority": "mid",
        "description": "Build services",
        "sanitized_description": "Build services",
        "posted_at": POSTED_AT,
        "hash": "f" * 64,
        "composite_key": "indeed:1",
        "first_seen_at": POSTED_AT,
        "last_seen_at": POSTED_AT,
        "last_source": "indeed",
    }
    payload.update(overrides)
    if "description" in overrides and "sanitized_description" not in overrides:
        payload["sanitized_description"] = overrides["description"]
    return CanonicalJob(**payload)

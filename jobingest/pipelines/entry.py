"""Process-wide ingestion entry points.

The cached pipeline owns an asyncpg pool and an index lock, both bound to the
event loop that first uses them. Run the entry points inside one long-lived
loop, and await ``close_pipelines()`` before that loop ends.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Mapping, Sequence

from jobingest.core.config import get_settings
from jobingest.pipelines.bulk import BulkIngestPipeline
from jobingest.pipelines.ingest import IngestJobPipeline, build_pipeline
from jobingest.schemas.jobs import BulkIngestResult, IngestResult, JobDTO
from jobingest.services.cache import build_cache
from jobingest.services.repository import get_repository


@lru_cache
def get_pipeline() -> IngestJobPipeline:
    settings = get_settings()
    repository = get_repository()
    return build_pipeline(settings, repository=repository, cache=build_cache(settings, repository))


@lru_cache
def get_bulk_pipeline() -> BulkIngestPipeline:
    settings = get_settings()
    return BulkIngestPipeline(
        get_pipeline(),
        max_batch_size=settings.max_batch_size,
        concurrency=settings.bulk_concurrency,
    )


async def ingest_one(dto: JobDTO | Mapping[str, Any]) -> IngestResult:
    return await get_pipeline().process(dto)


async def ingest_bulk(dtos: Sequence[JobDTO | Mapping[str, Any]]) -> BulkIngestResult:
    return await get_bulk_pipeline().process(dtos)


async def close_pipelines() -> None:
    """Close the shared pool and drop cached pipelines so a later loop starts fresh."""
    if get_pipeline.cache_info().currsize:
        await get_pipeline().repository.close()
    get_bulk_pipeline.cache_clear()
    get_pipeline.cache_clear()
    get_repository.cache_clear()

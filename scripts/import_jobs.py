#!/usr/bin/env python3
"""Import scraped job listings from JSON files through the ingestion pipeline."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterator, Sequence

from jobingest.core.config import Settings, get_settings
from jobingest.core.telemetry import telemetry_session
from jobingest.pipelines.bulk import BulkIngestPipeline
from jobingest.pipelines.errors import IngestValidationError
from jobingest.pipelines.ingest import build_pipeline
from jobingest.services.cache import InMemoryCache, JobCache, build_cache
from jobingest.services.repository import JobRepository, get_repository
from jobingest.services.store import InMemoryJobRepository

logger = logging.getLogger("import_jobs")


def load_records(path: Path) -> list[dict[str, Any]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("jobs") or payload.get("jobListings") or []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def chunked(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def run_import(
    paths: list[Path],
    *,
    settings: Settings,
    dry_run: bool = False,
    insert_only: bool = False,
) -> dict[str, int]:
    records: list[dict[str, Any]] = []
    for path in paths:
        loaded = load_records(path)
        logger.info("loaded file=%s records=%s", path, len(loaded))
        records.extend(loaded)

    repository: JobRepository
    cache: JobCache
    if dry_run:
        repository = InMemoryJobRepository()
        cache = InMemoryCache(default_ttl_seconds=settings.cache_ttl_seconds)
    else:
        postgres = get_repository()
        repository = postgres
        cache = build_cache(settings, postgres)

    pipeline = build_pipeline(settings, repository=repository, cache=cache)
    totals = {"processed": len(records), "success": 0, "failed": 0, "created": 0, "deduped": 0}
    try:
        await pipeline.startup()
        if insert_only:
            documents = []
            for record in records:
                try:
                    documents.append(pipeline.prepare(record))
                except IngestValidationError as exc:
                    totals["failed"] += 1
                    logger.warning("record rejected errors=%s", exc.to_payload())
            for chunk in chunked(documents, settings.max_batch_size):
                outcome = await repository.bulk_upsert(chunk)
                totals["success"] += outcome.upserted + outcome.matched
                totals["failed"] += outcome.failed
                totals["created"] += outcome.upserted
                totals["deduped"] += outcome.matched
            return totals

        bulk = BulkIngestPipeline(
            pipeline,
            max_batch_size=settings.max_batch_size,
            concurrency=settings.bulk_concurrency,
        )
        for chunk in chunked(records, settings.max_batch_size):
            result = await bulk.process(chunk)
            totals["success"] += result.success
            totals["failed"] += result.failed
            for item in result.results:
                if item.result is None:
                    continue
                if item.result.deduped:
                    totals["deduped"] += 1
                else:
                    totals["created"] += 1
        return totals
    finally:
        await repository.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Import job listings from JSON files.")
    parser.add_argument("paths", nargs="+", type=Path, help="JSON files holding a list or a {'jobs': [...]} object")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run the pipeline against an in-memory store instead of the database",
    )
    parser.add_argument(
        "--insert-only",
        action="store_true",
        help="Skip merge-upsert; insert unseen keys and touch last_seen_at for the rest",
    )
    args = parser.parse_args()

    settings = get_settings()
    with telemetry_session(settings):
        totals = asyncio.run(
            run_import(args.paths, settings=settings, dry_run=args.dry_run, insert_only=args.insert_only)
        )
    print(json.dumps(totals, sort_keys=True))


if __name__ == "__main__":
    main()

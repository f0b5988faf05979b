from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

from jobingest.core.telemetry import pipeline_step
from jobingest.pipelines.errors import IngestValidationError
from jobingest.pipelines.ingest import IngestJobPipeline
from jobingest.schemas.jobs import BulkIngestResult, BulkItemResult, JobDTO

logger = logging.getLogger(__name__)


class BulkIngestPipeline:
    """Runs the single-record pipeline over a batch with a fixed pool of workers.

    Failures are isolated per item and reported at the item's input index;
    process() never raises for partial failure.
    """

    def __init__(self, pipeline: IngestJobPipeline, *, max_batch_size: int = 500, concurrency: int = 8) -> None:
        self.pipeline = pipeline
        self.max_batch_size = max(1, max_batch_size)
        self.concurrency = max(1, concurrency)

    async def process(self, items: Sequence[JobDTO | Mapping[str, Any]]) -> BulkIngestResult:
        batch = list(items[: self.max_batch_size])
        if len(items) > len(batch):
            logger.info("bulk batch truncated received=%s max_batch_size=%s", len(items), self.max_batch_size)
        if not batch:
            return BulkIngestResult()

        queue: asyncio.Queue[tuple[int, JobDTO | Mapping[str, Any]]] = asyncio.Queue()
        for index, item in enumerate(batch):
            queue.put_nowait((index, item))
        slots: list[BulkItemResult | None] = [None] * len(batch)

        async def worker() -> None:
            while True:
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                slots[index] = await self._process_item(index, item)

        with pipeline_step("bulk", batch_size=len(batch)):
            await asyncio.gather(*(worker() for _ in range(min(self.concurrency, len(batch)))))

        results = [slot for slot in slots if slot is not None]
        success = sum(1 for result in results if result.ok)
        logger.info("bulk ingest finished success=%s failed=%s", success, len(results) - success)
        return BulkIngestResult(success=success, failed=len(results) - success, results=results)

    async def _process_item(self, index: int, item: JobDTO | Mapping[str, Any]) -> BulkItemResult:
        try:
            result = await self.pipeline.process(item)
        except IngestValidationError as exc:
            return BulkItemResult(index=index, ok=False, error=str(exc), details=exc.errors)
        except Exception as exc:
            logger.warning("bulk item failed index=%s error=%s", index, exc)
            return BulkItemResult(index=index, ok=False, error=str(exc) or exc.__class__.__name__)
        return BulkItemResult(index=index, ok=True, result=result)

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IndexDefinition:
    name: str
    expressions: tuple[str, ...]
    unique: bool = False
    method: str = "btree"

    def to_sql(self, table: str) -> str:
        unique_sql = "unique " if self.unique else ""
        using_sql = f" using {self.method}" if self.method != "btree" else ""
        return (
            f"create {unique_sql}index if not exists {self.name} "
            f"on {table}{using_sql} ({', '.join(self.expressions)})"
        )


JOB_INDEXES: tuple[IndexDefinition, ...] = (
    IndexDefinition("jobs_composite_key_uidx", ("composite_key",), unique=True),
    IndexDefinition("jobs_created_at_idx", ("created_at desc",)),
    IndexDefinition("jobs_posted_at_idx", ("posted_at desc",)),
    IndexDefinition("jobs_source_posted_at_idx", ("source", "posted_at desc")),
    IndexDefinition(
        "jobs_location_posted_at_idx",
        ("(location->>'country')", "(location->>'city')", "posted_at desc"),
    ),
    IndexDefinition("jobs_seniority_posted_at_idx", ("seniority", "posted_at desc")),
    IndexDefinition("jobs_skills_gin_idx", ("skills",), method="gin"),
    IndexDefinition(
        "jobs_salary_range_idx",
        (
            "((salary->>'normalized_annual_min')::numeric)",
            "((salary->>'normalized_annual_max')::numeric)",
        ),
    ),
)


class IndexTarget(Protocol):
    async def create_indexes(self, indexes: Sequence[IndexDefinition]) -> None: ...


class JobIndexer:
    """Issues the fixed index set against the store exactly once per instance."""

    def __init__(self, target: IndexTarget, indexes: Sequence[IndexDefinition] = JOB_INDEXES) -> None:
        self._target = target
        self._indexes = tuple(indexes)
        self._ensured = False
        self._lock = asyncio.Lock()

    @property
    def ensured(self) -> bool:
        return self._ensured

    async def ensure_indexes(self) -> bool:
        """Return True only for the call that actually created the indexes."""
        if self._ensured:
            return False
        async with self._lock:
            if self._ensured:
                return False
            await self._target.create_indexes(self._indexes)
            self._ensured = True
        logger.info("job indexes ensured count=%s", len(self._indexes))
        return True

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Protocol

from jobingest.core.clock import utcnow
from jobingest.core.config import Settings
from jobingest.services.repository import PostgresJobRepository

logger = logging.getLogger(__name__)

HOT_LIST_SKILL_LIMIT = 5


class JobCache(Protocol):
    async def get_json(self, key: str) -> Any | None: ...

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...


class InMemoryCache:
    """TTL dict; expired keys are dropped lazily on read."""

    def __init__(self, *, default_ttl_seconds: int = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}

    async def get_json(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._entries[key] = (value, self._clock() + ttl)

    def keys(self) -> list[str]:
        return list(self._entries)


class PostgresCache:
    """Shared cache backed by the cache_entries table; rows past expires_at read as misses."""

    def __init__(self, repository: PostgresJobRepository, *, default_ttl_seconds: int = 300) -> None:
        self._repository = repository
        self.default_ttl_seconds = default_ttl_seconds

    async def get_json(self, key: str) -> Any | None:
        pool = await self._repository.get_pool()
        raw = await pool.fetchval(
            """
            select value
            from cache_entries
            where key = $1 and expires_at > now()
            """,
            key,
        )
        if raw is None:
            return None
        return json.loads(raw) if isinstance(raw, str) else raw

    async def set_json(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        pool = await self._repository.get_pool()
        await pool.execute(
            """
            insert into cache_entries (key, value, expires_at)
            values ($1, $2::jsonb, $3)
            on conflict (key) do update
            set value = excluded.value, expires_at = excluded.expires_at
            """,
            key,
            json.dumps(value),
            utcnow() + timedelta(seconds=ttl),
        )


def build_cache(settings: Settings, repository: PostgresJobRepository) -> JobCache:
    if settings.cache_backend == "postgres":
        return PostgresCache(repository, default_ttl_seconds=settings.cache_ttl_seconds)
    return InMemoryCache(default_ttl_seconds=settings.cache_ttl_seconds)


@dataclass(slots=True)
class HotListSummary:
    source: str
    country: str | None = None
    city: str | None = None
    skills: tuple[str, ...] = ()


class HotListWarmer:
    def __init__(self, cache: JobCache, *, ttl_seconds: int) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def warm_hot_lists(self, summary: HotListSummary) -> list[str]:
        marker = {"t": int(time.time() * 1000)}
        keys = hot_list_keys(summary)
        for key in keys:
            await self.cache.set_json(key, marker, self.ttl_seconds)
        logger.debug("hot lists warmed keys=%s", len(keys))
        return keys


def hot_list_keys(summary: HotListSummary) -> list[str]:
    keys: list[str] = []
    if summary.source:
        keys.append(f"jobs:latest:{summary.source}")
    if summary.country and summary.city:
        keys.append(f"jobs:latest:{summary.country}:{summary.city}")
    for skill in summary.skills[:HOT_LIST_SKILL_LIMIT]:
        keys.append(f"jobs:skill:{skill.lower()}")
    return keys

from __future__ import annotations

import asyncio

from jobingest.services.cache import HotListSummary, HotListWarmer, InMemoryCache, hot_list_keys


def test_in_memory_cache_expires_entries_after_ttl() -> None:
    now = [1000.0]
    cache = InMemoryCache(clock=lambda: now[0])

    async def run() -> tuple[object, object]:
        await cache.set_json("jobs:latest:indeed", {"t": 1}, ttl_seconds=120)
        fresh = await cache.get_json("jobs:latest:indeed")
        now[0] += 120
        return fresh, await cache.get_json("jobs:latest:indeed")

    fresh, expired = asyncio.run(run())

    assert fresh == {"t": 1}
    assert expired is None
    assert cache.keys() == []


def test_in_memory_cache_falls_back_to_default_ttl() -> None:
    now = [0.0]
    cache = InMemoryCache(default_ttl_seconds=30, clock=lambda: now[0])

    async def run() -> tuple[object, object]:
        await cache.set_json("jobs:latest:manual", {"t": 2})
        now[0] = 29
        before = await cache.get_json("jobs:latest:manual")
        now[0] = 30
        return before, await cache.get_json("jobs:latest:manual")

    before, after = asyncio.run(run())

    assert before == {"t": 2}
    assert after is None


def test_hot_list_keys_cover_source_location_and_first_five_skills() -> None:
    summary = HotListSummary(
        source="linkedin",
        country="IN",
        city="Pune",
        skills=("Python", "AWS", "Docker", "SQL", "Git", "Kafka"),
    )

    assert hot_list_keys(summary) == [
        "jobs:latest:linkedin",
        "jobs:latest:IN:Pune",
        "jobs:skill:python",
        "jobs:skill:aws",
        "jobs:skill:docker",
        "jobs:skill:sql",
        "jobs:skill:git",
    ]


def test_hot_list_keys_skip_location_without_city() -> None:
    assert hot_list_keys(HotListSummary(source="manual", country="AE")) == ["jobs:latest:manual"]


def test_warmer_writes_timestamp_marker_for_every_key() -> None:
    cache = InMemoryCache()
    warmer = HotListWarmer(cache, ttl_seconds=120)

    async def run() -> list[str]:
        return await warmer.warm_hot_lists(HotListSummary(source="indeed", country="IN", city="Pune", skills=("React",)))

    keys = asyncio.run(run())

    assert keys == ["jobs:latest:indeed", "jobs:latest:IN:Pune", "jobs:skill:react"]
    assert sorted(cache.keys()) == sorted(keys)
    marker = asyncio.run(cache.get_json("jobs:skill:react"))
    assert isinstance(marker["t"], int)

#!/usr/bin/env python3
"""Create the fixed job indexes. Safe to re-run."""

from __future__ import annotations

import asyncio
import logging
import sys

from jobingest.core.config import get_settings
from jobingest.core.telemetry import telemetry_session
from jobingest.services.indexer import JobIndexer
from jobingest.services.repository import RepositoryError, get_repository

logger = logging.getLogger("ensure_indexes")


async def run() -> None:
    repository = get_repository()
    try:
        await JobIndexer(repository).ensure_indexes()
    finally:
        await repository.close()


def main() -> None:
    with telemetry_session(get_settings()):
        try:
            asyncio.run(run())
        except RepositoryError:
            logger.exception("ensure indexes failed")
            sys.exit(1)
    print("Indexes ensured on jobs table.")


if __name__ == "__main__":
    main()

from __future__ import annotations

import logging

from jobingest.schemas.jobs import AuditEntry
from jobingest.services.repository import JobRepository

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, repository: JobRepository, *, enabled: bool = True) -> None:
        self.repository = repository
        self.enabled = enabled

    async def append(self, entry: AuditEntry) -> bool:
        if not self.enabled:
            return False
        await self.repository.append_audit(entry)
        logger.debug("audit appended job_id=%s action=%s", entry.job_id, entry.action)
        return True

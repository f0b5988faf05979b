from __future__ import annotations

import hashlib

from jobingest.core.urls import normalize_url
from jobingest.schemas.jobs import NormalizedJob

HASH_SEPARATOR = "|"
HASH_DESCRIPTION_CHARS = 300


class JobDeduplicator:
    """Identity derivation for canonical jobs.

    Both functions must see the normalized job so cosmetic differences between
    producers do not split one posting into several records. The hash fallback
    is content-sensitive: when neither an external id nor a URL is available,
    edited text yields a new identity rather than an update.
    """

    def build_hash(self, job: NormalizedJob) -> str:
        key_base = HASH_SEPARATOR.join(
            [
                (job.title or "").casefold(),
                (job.company.name or "").casefold(),
                (job.location.city or "").casefold(),
                (job.location.country or "").casefold(),
                (job.description or "")[:HASH_DESCRIPTION_CHARS].casefold(),
            ]
        )
        return hashlib.sha256(key_base.encode("utf-8")).hexdigest()

    def composite_key(self, job: NormalizedJob, job_hash: str) -> str:
        if job.external_id:
            return f"{job.source}:{job.external_id}"
        canonical_url = normalize_url(job.canonical_url)
        if canonical_url:
            return f"{job.source}:{canonical_url}"
        return f"{job.source}:{job_hash}"

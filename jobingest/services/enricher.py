from __future__ import annotations

import re

from jobingest.core.text import dedupe_text_list
from jobingest.schemas.jobs import NormalizedJob

SKILL_TERMS = [
    "javascript",
    "typescript",
    "node",
    "react",
    "angular",
    "vue",
    "python",
    "java",
    "c#",
    "aws",
    "azure",
    "gcp",
    "sql",
    "nosql",
    "mongodb",
    "docker",
    "kubernetes",
    "linux",
    "git",
    "rest",
    "graphql",
    "html",
    "css",
    "ml",
    "ai",
    "nlp",
]

BENEFIT_TERMS = [
    "insurance",
    "visa sponsorship",
    "housing",
    "travel",
    "stock",
    "equity",
    "bonus",
    "pto",
    "remote",
]


def _term_pattern(term: str) -> re.Pattern[str]:
    # Alphanumeric guards instead of \b so terms ending in symbols ("c#") still match.
    return re.compile(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])")


_SKILL_PATTERNS = [(term, _term_pattern(term)) for term in SKILL_TERMS]
_BENEFIT_PATTERNS = [(term, _term_pattern(term)) for term in BENEFIT_TERMS]


class JobEnricher:
    def enrich(self, job: NormalizedJob) -> NormalizedJob:
        text = f"{job.title or ''} {job.description or ''}".lower()
        skills = dedupe_text_list([*job.skills, *_matches(text, _SKILL_PATTERNS)])
        benefits = dedupe_text_list([*job.benefits, *_matches(text, _BENEFIT_PATTERNS)])
        return job.model_copy(update={"skills": skills, "benefits": benefits})


def _matches(text: str, patterns: list[tuple[str, re.Pattern[str]]]) -> list[str]:
    return [term for term, pattern in patterns if pattern.search(text)]

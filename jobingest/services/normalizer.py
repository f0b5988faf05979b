"""Canonical-form rewriting for accepted job records.

Everything here is deterministic and free of I/O so identical input from
different producers always lands on the same canonical representation.
Currency amounts are annualized but never converted between currencies.
"""

from __future__ import annotations

import re

from jobingest.core.clock import as_utc
from jobingest.core.text import coerce_text
from jobingest.schemas.jobs import (
    CompanyRef,
    JobDTO,
    LocationInfo,
    NormalizedJob,
    RemoteType,
    SalaryInfo,
    SalaryPeriod,
    Seniority,
)

_WHITESPACE_RE = re.compile(r"\s+")
_TAG_RE = re.compile(r"<[^>]*>")
_TITLE_WORD_RE = re.compile(r"\w\S*")

# Longer phrases first so "s/w eng" wins over "s/w".
TITLE_SYNONYMS: list[tuple[str, str]] = [
    (r"s/w eng(?:ineer)?", "software engineer"),
    (r"s/w", "software"),
    (r"sde", "software development engineer"),
    (r"swe", "software engineer"),
    (r"sr\.?", "senior"),
    (r"jr\.?", "junior"),
    (r"mgr\.?", "manager"),
    (r"engr\.?", "engineer"),
    (r"dev", "developer"),
]
_TITLE_SYNONYM_PATTERNS = [
    (re.compile(rf"(?<![a-z0-9]){pattern}(?![a-z0-9])"), replacement) for pattern, replacement in TITLE_SYNONYMS
]

SENIORITY_PATTERNS: list[tuple[re.Pattern[str], Seniority]] = [
    (re.compile(r"\b(intern|internship|junior|jr|entry|entry-level|graduate)\b"), "entry"),
    (re.compile(r"\b(senior|sr|principal)\b"), "senior"),
    (re.compile(r"\blead\b"), "lead"),
    (re.compile(r"\bdirector\b"), "director"),
    (re.compile(r"\b(vp|vice president)\b"), "vp"),
    (re.compile(r"\b(ceo|cto|cfo|coo|cmo|cio|chief)\b"), "cxo"),
]

HOURS_PER_DAY = 8
WORKDAYS_PER_YEAR = 260
MONTHS_PER_YEAR = 12


class JobNormalizer:
    def __init__(self, *, default_country: str = "IN", base_currency: str = "USD") -> None:
        self.default_country = default_country.strip().upper()
        self.base_currency = base_currency.strip().upper()

    def normalize(self, dto: JobDTO) -> NormalizedJob:
        description = sanitize_markup(dto.description)
        title = normalize_title(dto.title or "")
        context_text = f"{title} {description or ''}"

        seniority: Seniority
        if dto.seniority and dto.seniority != "unknown":
            seniority = dto.seniority
        else:
            seniority = infer_seniority(context_text)

        company = dto.company or CompanyRef()
        return NormalizedJob(
            source=dto.source,
            external_id=coerce_text(dto.external_id),
            canonical_url=coerce_text(dto.canonical_url),
            title=title,
            company=CompanyRef(
                name=coerce_text(company.name),
                domain=(coerce_text(company.domain) or "").lower() or None,
            ),
            location=self._normalize_location(dto.location, context_text),
            salary=self._normalize_salary(dto.salary),
            seniority=seniority,
            description=description,
            skills=list(dto.skills),
            benefits=list(dto.benefits),
            posted_at=as_utc(dto.posted_at),
            expires_at=as_utc(dto.expires_at),
            application_count=dto.application_count,
            referral_available=dto.referral_available,
        )

    def _normalize_location(self, location: LocationInfo | None, context_text: str) -> LocationInfo:
        raw = location or LocationInfo()
        country = coerce_text(raw.country) or self.default_country
        return LocationInfo(
            city=coerce_text(raw.city),
            state=coerce_text(raw.state),
            country=country.upper(),
            remote_type=raw.remote_type or detect_remote_type(context_text),
        )

    def _normalize_salary(self, salary: SalaryInfo | None) -> SalaryInfo | None:
        if salary is None:
            return None
        currency = (coerce_text(salary.currency) or "").upper() or None
        if salary.min is None and salary.max is None:
            return salary.model_copy(update={"currency": currency})

        return salary.model_copy(
            update={
                "currency": currency,
                "normalized_annual_min": to_annual(salary.min, salary.period) if salary.min is not None else None,
                "normalized_annual_max": to_annual(salary.max, salary.period) if salary.max is not None else None,
                # No FX: figures stay in the source currency, so only claim the base when they match.
                "normalized_currency": self.base_currency if currency in (None, self.base_currency) else currency,
            }
        )


def normalize_title(raw_title: str) -> str:
    title = _WHITESPACE_RE.sub(" ", raw_title.lower()).strip()
    for pattern, replacement in _TITLE_SYNONYM_PATTERNS:
        title = pattern.sub(replacement, title)
    return to_title_case(title)


def to_title_case(value: str) -> str:
    collapsed = _WHITESPACE_RE.sub(" ", value).strip()
    return _TITLE_WORD_RE.sub(lambda match: match.group(0)[0].upper() + match.group(0)[1:].lower(), collapsed)


def detect_remote_type(text: str) -> RemoteType:
    lowered = text.lower()
    if "remote" in lowered:
        return "remote"
    if "hybrid" in lowered:
        return "hybrid"
    return "onsite"


def infer_seniority(text: str) -> Seniority:
    lowered = text.lower()
    for pattern, label in SENIORITY_PATTERNS:
        if pattern.search(lowered):
            return label
    return "mid"


def to_annual(amount: float, period: SalaryPeriod | None) -> float:
    if period == "hour":
        return amount * HOURS_PER_DAY * WORKDAYS_PER_YEAR
    if period == "day":
        return amount * WORKDAYS_PER_YEAR
    if period == "month":
        return amount * MONTHS_PER_YEAR
    return amount


def sanitize_markup(text: str | None) -> str | None:
    """Strip tags with a regex; this is not an HTML parser and keeps entities as-is."""
    if text is None:
        return None
    stripped = _TAG_RE.sub("", text).strip()
    return stripped or None

from __future__ import annotations

import re

EMAIL_PLACEHOLDER = "[redacted-email]"
PHONE_PLACEHOLDER = "[redacted-phone]"

_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_PHONE_RE = re.compile(r"(?:\+\d{1,3}[\s-]?)?(?:\(?\d{2,4}\)?[\s-]?)?\d{3,4}[\s-]?\d{3,4}")


class PIIRedactor:
    """Best-effort regex scrub of contact details; not a guarantee that no PII remains."""

    def __init__(self, *, enabled: bool = False, fields: list[str] | None = None) -> None:
        self.enabled = enabled
        self.fields = {field.strip().lower() for field in (fields if fields is not None else ["email", "phone"])}

    def redact(self, text: str | None) -> str | None:
        if not self.enabled or not text:
            return text
        redacted = text
        # Emails first: the phone pattern would otherwise eat digit runs inside addresses.
        if "email" in self.fields:
            redacted = _EMAIL_RE.sub(EMAIL_PLACEHOLDER, redacted)
        if "phone" in self.fields:
            redacted = _PHONE_RE.sub(PHONE_PLACEHOLDER, redacted)
        return redacted

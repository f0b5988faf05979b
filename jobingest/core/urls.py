from __future__ import annotations

from urllib.parse import urlparse, urlunparse

DEFAULT_PORTS = {"http": "80", "https": "443"}


def normalize_url(raw_url: str | None) -> str | None:
    """Identity-grade URL normalization: drop query and fragment, lower-case scheme and host.

    Values that do not parse as absolute URLs are returned trimmed but otherwise untouched.
    """
    if raw_url is None:
        return None
    candidate = raw_url.strip()
    if not candidate:
        return None

    parsed = urlparse(candidate)
    if not parsed.scheme or not parsed.netloc:
        return candidate

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if ":" in netloc:
        host, port = netloc.rsplit(":", maxsplit=1)
        if DEFAULT_PORTS.get(scheme) == port:
            netloc = host

    path = parsed.path or "/"
    return urlunparse((scheme, netloc, path, "", "", ""))

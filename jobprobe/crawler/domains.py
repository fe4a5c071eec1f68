"""
URL to domain resolution shared by the rate limiter and failure tracker.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlparse


def resolve_domain(url: str) -> str:
    """
    Return the lowercase host for `url` without port or leading `www.`.
    """

    parsed = urlparse(url.strip())
    host = (parsed.hostname or "").lower()
    if not host and not parsed.scheme:
        host = urlparse(f"//{url.strip()}").hostname or ""
    if host.startswith("www."):
        host = host[4:]
    return host


def is_sensitive_domain(domain: str, sensitive_domains: Iterable[str]) -> bool:
    """
    Match `domain` against configured sensitive domains, including subdomains.
    """

    if not domain:
        return False
    for candidate in sensitive_domains:
        candidate = candidate.strip().lower()
        if not candidate:
            continue
        if domain == candidate or domain.endswith(f".{candidate}"):
            return True
    return False

"""
HEARDROP Backend — Small shared helpers (slugs, social handles).
"""

import re
from typing import Optional
from urllib.parse import urlparse

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


def slugify(value: str) -> str:
    """
    Lowercase, drop anything outside [a-z0-9 -], turn whitespace into dashes
    and collapse repeated dashes.

    >>> slugify("  Stüssy Tokyo Chapt. 2 ")
    'stssy-tokyo-chapt-2'
    """
    slug = _NON_SLUG_CHARS.sub("", value.lower().strip())
    slug = _WHITESPACE.sub("-", slug)
    slug = _DASHES.sub("-", slug)
    return slug.strip("-")


def social_handle(url: Optional[str]) -> str:
    """Last path segment of a profile URL, without a leading '@'."""
    if not url:
        return ""
    parsed = urlparse(url.strip())
    segments = [s for s in parsed.path.split("/") if s]
    if not segments:
        return ""
    return segments[-1].lstrip("@")

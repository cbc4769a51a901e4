from __future__ import annotations

"""Deterministic natural keys for sources without one of their own.

Feed entries only carry a link; the slug is derived from it so re-ingesting the
same entry lands on the same row.
"""

import hashlib


def link_digest_hex(link: str, *, length: int = 16) -> str:
    normalized = (link or "").strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:length]


def feed_entry_slug(link: str) -> str:
    return f"rss-{link_digest_hex(link)}"

from __future__ import annotations

"""Text helpers shared by normalizers (slugs, truncation, HTML stripping)."""

import html
import re
import unicodedata


_SLUG_UNSAFE = re.compile(r"[^\w\-]+", re.UNICODE)
_DASHES = re.compile(r"-{2,}")


def slugify(value: str) -> str:
    """Derive a natural key from a display name.

    NFKC-normalized, lower-cased, whitespace and punctuation collapsed to `-`.
    Non-ASCII letters (e.g. Japanese names) are kept as-is.
    """
    text = unicodedata.normalize("NFKC", value or "").strip().lower()
    text = re.sub(r"\s+", "-", text)
    text = _SLUG_UNSAFE.sub("-", text).replace("_", "-")
    return _DASHES.sub("-", text).strip("-")


def limit_text(value: str, max_length: int) -> str:
    text = (value or "").strip()
    if len(text) <= max_length:
        return text
    return text[: max(max_length - 1, 0)].rstrip() + "…"


def strip_html(value: str) -> str:
    # Minimal sanitization; feed summaries often contain HTML.
    text = re.sub(r"<[^>]+>", " ", value or "")
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()

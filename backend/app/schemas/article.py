"""Canonical article record shared by every ingestion source.

Each source-specific normalizer produces an `Article`; the linker enriches its
related-* fields; the store adapter persists it keyed by `slug`, falling back to
`source_url`.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


UTC = timezone.utc


class ArticleType(str, Enum):
    WORK = "work"
    PERFORMER = "performer"
    TOPIC = "topic"


class ArticleImage(BaseModel):
    url: str
    alt: str = ""

    model_config = ConfigDict(frozen=True)


class Article(BaseModel):
    """The unit of storage."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ArticleType
    slug: str = Field(..., min_length=1)
    title: str
    summary: str
    body: str
    images: list[ArticleImage] = Field(default_factory=list)
    source_url: str = Field(..., min_length=1)
    affiliate_url: Optional[str] = None
    embed_html: Optional[str] = None
    meta_genres: list[str] = Field(default_factory=list)
    meta_makers: list[str] = Field(default_factory=list)
    related_works: list[str] = Field(default_factory=list)
    related_performers: list[str] = Field(default_factory=list)
    published_at: datetime
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("published_at", "fetched_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        # Naive timestamps are treated as UTC.
        if value.tzinfo is None or value.utcoffset() is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @field_validator("related_works")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(v for v in value if v))

    def body_facts(self) -> dict[str, str]:
        """Map of `label -> value` for each `label: value` body line."""
        facts: dict[str, str] = {}
        for line in self.body.splitlines():
            label, sep, value = line.partition(":")
            if sep and label.strip() and label.strip() not in facts:
                facts[label.strip()] = value.strip()
        return facts

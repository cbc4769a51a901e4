"""Persisted article rows.

Articles are overwritten in place on re-ingestion (create-or-overwrite by slug,
fallback overwrite by source_url). This pipeline never deletes them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.core.base import Base, JSONType, UUIDPrimaryKeyMixin, UpdatedAtMixin


UTC = timezone.utc


class StoredArticle(UUIDPrimaryKeyMixin, UpdatedAtMixin, Base):
    __tablename__ = "articles"

    type: Mapped[str] = mapped_column(String(16), nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    images: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    affiliate_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    embed_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    meta_genres: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    meta_makers: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    related_works: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    related_performers: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    published_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ux_articles_slug", "slug", unique=True),
        Index("ux_articles_source_url", "source_url", unique=True),
        Index("ix_articles_type_published_at", "type", "published_at"),
    )

    @validates("published_at", "fetched_at")
    def _validate_utc(self, key: str, value: datetime) -> datetime:
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError(f"{key} must be timezone-aware (UTC).")
        if value.utcoffset() != timedelta(0):
            return value.astimezone(UTC)
        return value

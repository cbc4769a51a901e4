"""Aggregate stats tables.

Derived data rebuilt from `articles` after each ingestion run; never a source of
truth for ingestion itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.base import Base


class _StatColumns:
    work_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    latest_published_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class PerformerStat(_StatColumns, Base):
    __tablename__ = "performer_stats"

    performer: Mapped[str] = mapped_column(Text, primary_key=True)


class GenreStat(_StatColumns, Base):
    __tablename__ = "genre_stats"

    genre: Mapped[str] = mapped_column(Text, primary_key=True)


class MakerStat(_StatColumns, Base):
    __tablename__ = "maker_stats"

    maker: Mapped[str] = mapped_column(Text, primary_key=True)

from __future__ import annotations

"""Article store adapter.

Upsert contract:
- Primary path: insert-or-overwrite keyed by `slug`.
- On a uniqueness violation (the `source_url` is already owned by a row with a
  different slug), roll back and overwrite the row that owns `source_url`.
- Anything else propagates.

Slug and source_url can each be the first-seen key depending on ingestion
order across resumed runs; this converges to one row per logical item either way.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterable, Optional, Protocol

from sqlalchemy import cast, delete, func, insert, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.models.article import StoredArticle
from app.models.stats import GenreStat, MakerStat, PerformerStat
from app.schemas.article import Article, ArticleImage, ArticleType
from ingestion.core.errors import PersistenceError
from ingestion.core.events import log_event


logger = logging.getLogger("avinfo.ingestion.store")

# Read window used when scanning JSON arrays without a containment operator.
PERFORMER_SCAN_LIMIT = 200


class UpsertStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class ConflictKey(str, Enum):
    SLUG = "slug"
    SOURCE_URL = "source_url"


@dataclass(frozen=True, slots=True)
class UpsertResult:
    status: UpsertStatus
    conflict_key: ConflictKey


class ArticleStore(Protocol):
    """Store contract consumed by the ingestion pipeline."""

    def upsert_article(self, article: Article) -> UpsertResult: ...

    def get_work_slugs(self, limit: int = 2000) -> frozenset[str]: ...

    def find_works_by_performer(self, performer_slug: str, limit: int = 8) -> list[Article]: ...

    def get_latest_by_type(self, article_type: ArticleType, limit: int = 10) -> list[Article]: ...

    def refresh_site_stats(self) -> None: ...

    def refresh_performer_stats(self) -> None: ...


def _row_values(article: Article) -> dict[str, Any]:
    return {
        "id": uuid.UUID(article.id),
        "type": article.type.value,
        "slug": article.slug,
        "title": article.title,
        "summary": article.summary,
        "body": article.body,
        "images": [img.model_dump() for img in article.images],
        "source_url": article.source_url,
        "affiliate_url": article.affiliate_url,
        "embed_html": article.embed_html,
        "meta_genres": list(article.meta_genres),
        "meta_makers": list(article.meta_makers),
        "related_works": list(article.related_works),
        "related_performers": list(article.related_performers),
        "published_at": article.published_at,
        "fetched_at": article.fetched_at,
    }


KEY_CONSTRAINT_MARKERS: tuple[str, ...] = (
    "ux_articles_slug",
    "ux_articles_source_url",
    "articles.slug",
    "articles.source_url",
)


def is_key_conflict(exc: IntegrityError) -> bool:
    """True when the violation is on the slug or source_url unique index."""
    # PostgreSQL names the index; SQLite names the column.
    message = str(exc.orig if exc.orig is not None else exc)
    return any(marker in message for marker in KEY_CONSTRAINT_MARKERS)


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def to_article(row: StoredArticle) -> Article:
    return Article(
        id=str(row.id),
        type=ArticleType(row.type),
        slug=row.slug,
        title=row.title,
        summary=row.summary,
        body=row.body,
        images=[ArticleImage(**img) for img in _as_list(row.images) if isinstance(img, dict)],
        source_url=row.source_url,
        affiliate_url=row.affiliate_url,
        embed_html=row.embed_html,
        meta_genres=_as_list(row.meta_genres),
        meta_makers=_as_list(row.meta_makers),
        related_works=_as_list(row.related_works),
        related_performers=_as_list(row.related_performers),
        published_at=row.published_at,
        fetched_at=row.fetched_at,
    )


class SqlArticleStore:
    """SQLAlchemy-backed ArticleStore (PostgreSQL in production, SQLite in tests)."""

    def __init__(self, session_factory: sessionmaker[Session] | Callable[[], Session]) -> None:
        self._session_factory = session_factory

    # -- writes -------------------------------------------------------------

    def _insert_on_slug(self, session: Session, values: dict[str, Any]):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = pg_insert(StoredArticle).values(**values)
        elif dialect == "sqlite":
            stmt = sqlite_insert(StoredArticle).values(**values)
        else:
            raise PersistenceError(f"Unsupported dialect for upsert: {dialect}")
        # The existing row keeps its id; everything else is overwritten.
        overwrite = {k: stmt.excluded[k] for k in values if k not in ("id", "slug")}
        overwrite["updated_at"] = func.now()
        return stmt.on_conflict_do_update(index_elements=[StoredArticle.slug], set_=overwrite)

    def upsert_article(self, article: Article) -> UpsertResult:
        values = _row_values(article)

        with self._session_factory() as session:
            existed = session.execute(
                select(StoredArticle.id).where(StoredArticle.slug == article.slug).limit(1)
            ).scalar_one_or_none() is not None
            try:
                session.execute(self._insert_on_slug(session, values))
                session.commit()
                return UpsertResult(
                    status=UpsertStatus.UPDATED if existed else UpsertStatus.CREATED,
                    conflict_key=ConflictKey.SLUG,
                )
            except IntegrityError as exc:
                session.rollback()
                if not is_key_conflict(exc):
                    raise
                log_event(
                    logger,
                    "upsert_slug_conflict",
                    level=logging.WARNING,
                    slug=article.slug,
                    source_url=article.source_url,
                    error=type(exc.orig).__name__ if exc.orig is not None else None,
                )

            fallback = {k: v for k, v in values.items() if k != "id"}
            fallback["updated_at"] = func.now()
            try:
                result = session.execute(
                    update(StoredArticle)
                    .where(StoredArticle.source_url == article.source_url)
                    .values(**fallback)
                )
                if not result.rowcount:
                    raise PersistenceError(
                        f"Upsert of {article.slug} conflicted but no row owns source_url {article.source_url}"
                    )
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise PersistenceError(
                    f"Upsert of {article.slug} conflicts on both slug and source_url"
                ) from exc

        return UpsertResult(status=UpsertStatus.UPDATED, conflict_key=ConflictKey.SOURCE_URL)

    # -- reads --------------------------------------------------------------

    def get_work_slugs(self, limit: int = 2000) -> frozenset[str]:
        """Natural keys of the most recent works; the fetch-stage exclusion snapshot."""
        stmt = (
            select(StoredArticle.slug)
            .where(StoredArticle.type == ArticleType.WORK.value)
            .order_by(StoredArticle.published_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return frozenset(session.execute(stmt).scalars().all())

    def get_latest_by_type(self, article_type: ArticleType, limit: int = 10) -> list[Article]:
        stmt = (
            select(StoredArticle)
            .where(StoredArticle.type == ArticleType(article_type).value)
            .order_by(StoredArticle.published_at.desc())
            .limit(limit)
        )
        with self._session_factory() as session:
            return [to_article(row) for row in session.execute(stmt).scalars().all()]

    def find_works_by_performer(self, performer_slug: str, limit: int = 8) -> list[Article]:
        """Most recent works whose related_performers contains `performer_slug`."""
        with self._session_factory() as session:
            if session.get_bind().dialect.name == "postgresql":
                stmt = (
                    select(StoredArticle)
                    .where(StoredArticle.type == ArticleType.WORK.value)
                    .where(cast(StoredArticle.related_performers, JSONB).contains([performer_slug]))
                    .order_by(StoredArticle.published_at.desc())
                    .limit(limit)
                )
                return [to_article(row) for row in session.execute(stmt).scalars().all()]

            stmt = (
                select(StoredArticle)
                .where(StoredArticle.type == ArticleType.WORK.value)
                .order_by(StoredArticle.published_at.desc())
                .limit(max(limit, PERFORMER_SCAN_LIMIT))
            )
            rows = session.execute(stmt).scalars().all()
            matches = [row for row in rows if performer_slug in _as_list(row.related_performers)]
            return [to_article(row) for row in matches[:limit]]

    # -- aggregate stats ----------------------------------------------------

    def _rebuild(self, session: Session, model, key_column: str, keys_of: Callable[[StoredArticle], Iterable[str]]) -> int:
        counts: dict[str, int] = defaultdict(int)
        latest: dict[str, Optional[datetime]] = {}
        rows = session.execute(
            select(StoredArticle).where(StoredArticle.type == ArticleType.WORK.value)
        ).scalars()
        for row in rows:
            for key in dict.fromkeys(k for k in keys_of(row) if k):
                counts[key] += 1
                prev = latest.get(key)
                if prev is None or row.published_at > prev:
                    latest[key] = row.published_at

        session.execute(delete(model))
        if counts:
            session.execute(
                insert(model),
                [
                    {key_column: key, "work_count": count, "latest_published_at": latest.get(key)}
                    for key, count in counts.items()
                ],
            )
        return len(counts)

    def refresh_performer_stats(self) -> None:
        with self._session_factory() as session:
            n = self._rebuild(session, PerformerStat, "performer", lambda r: _as_list(r.related_performers))
            session.commit()
        log_event(logger, "stats_refreshed", scope="performers", performers=n)

    def refresh_site_stats(self) -> None:
        with self._session_factory() as session:
            performers = self._rebuild(session, PerformerStat, "performer", lambda r: _as_list(r.related_performers))
            genres = self._rebuild(session, GenreStat, "genre", lambda r: _as_list(r.meta_genres))
            makers = self._rebuild(session, MakerStat, "maker", lambda r: _as_list(r.meta_makers))
            session.commit()
        log_event(logger, "stats_refreshed", scope="site", performers=performers, genres=genres, makers=makers)


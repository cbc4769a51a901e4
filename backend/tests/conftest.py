from __future__ import annotations

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[2]

# Ensure `backend/app` is importable as top-level `app` for tests.
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import app.models  # noqa: E402,F401
from app.core.base import Base  # noqa: E402
from app.core.env import load_env_if_present  # noqa: E402
from app.schemas.article import Article, ArticleImage, ArticleType  # noqa: E402
from ingestion.core.settings import IngestSettings  # noqa: E402
from ingestion.core.store import SqlArticleStore  # noqa: E402
from ingestion.core.text import slugify  # noqa: E402


UTC = timezone.utc
BASE_TIME = datetime(2026, 10, 18, 3, 0, tzinfo=UTC)


def _db_url() -> str | None:
    load_env_if_present()
    return os.environ.get("DATABASE_URL")


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    """In-memory SQLite with the full schema; one connection shared by all sessions."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False)


@pytest.fixture()
def store(session_factory: sessionmaker[Session]) -> SqlArticleStore:
    return SqlArticleStore(session_factory)


@pytest.fixture(scope="session")
def pg_url() -> str:
    url = _db_url()
    if not url or not url.startswith("postgresql"):
        pytest.skip("DATABASE_URL (postgresql) not set; skipping DB integration tests.")
    return url


def make_settings(**overrides) -> IngestSettings:
    values = {"dmm_api_id": "api-123", "dmm_affiliate_id": "aff-990"}
    values.update(overrides)
    return IngestSettings(**values)


def make_work(
    slug: str,
    *,
    title: str | None = None,
    performers: tuple[str, ...] = (),
    maker: str | None = None,
    genres: tuple[str, ...] = (),
    minutes_ago: int = 0,
    source_url: str | None = None,
) -> Article:
    lines = [f"作品番号: {slug}"]
    if performers:
        lines.append(f"出演: {' / '.join(performers)}")
    if maker:
        lines.append(f"メーカー: {maker}")
    if genres:
        lines.append(f"ジャンル: {' / '.join(genres)}")
    return Article(
        type=ArticleType.WORK,
        slug=slug,
        title=title or f"{slug} title",
        summary=f"{slug} の作品情報。",
        body="\n".join(lines),
        images=[ArticleImage(url=f"https://img.example.test/{slug}.jpg", alt=slug)],
        source_url=source_url or f"https://catalog.example.test/{slug}/",
        affiliate_url=f"https://catalog.example.test/{slug}/?aff_id=aff-990",
        meta_genres=list(genres),
        meta_makers=[maker] if maker else [],
        related_performers=[slugify(p) for p in performers],
        published_at=BASE_TIME - timedelta(minutes=minutes_ago),
    )

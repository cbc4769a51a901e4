from __future__ import annotations

"""PostgreSQL integration: migrations and dialect-specific store paths.

Skipped unless DATABASE_URL points at a PostgreSQL database.
"""

from typing import Generator

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, delete, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.models.article import StoredArticle
from ingestion.core.store import ConflictKey, SqlArticleStore

from conftest import BACKEND_DIR, make_work


def _alembic_config(db_url: str) -> Config:
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    return cfg


@pytest.fixture(scope="module")
def pg_engine(pg_url: str) -> Generator[Engine, None, None]:
    command.upgrade(_alembic_config(pg_url), "head")
    eng = create_engine(pg_url, future=True)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture()
def pg_store(pg_engine: Engine) -> Generator[SqlArticleStore, None, None]:
    factory = sessionmaker(bind=pg_engine, class_=Session, autoflush=False, autocommit=False)
    yield SqlArticleStore(factory)
    with factory() as session:
        session.execute(delete(StoredArticle).where(StoredArticle.slug.like("PGTEST-%")))
        session.commit()


def test_expected_tables_exist(pg_engine: Engine):
    with pg_engine.connect() as conn:
        rows = conn.execute(
            text("select tablename from pg_tables where schemaname='public' order by tablename")
        ).fetchall()
    tables = {r[0] for r in rows}

    assert {"articles", "performer_stats", "genre_stats", "maker_stats"}.issubset(tables)


def test_unique_indexes_exist(pg_engine: Engine):
    with pg_engine.connect() as conn:
        rows = conn.execute(
            text("select indexname, indexdef from pg_indexes where tablename = 'articles'")
        ).fetchall()
    defs = {name: definition for name, definition in rows}

    assert "UNIQUE" in defs["ux_articles_slug"]
    assert "UNIQUE" in defs["ux_articles_source_url"]
    assert "gin" in defs["ix_articles_related_performers"].lower()


def test_postgres_upsert_fallback_and_performer_lookup(pg_store: SqlArticleStore):
    url = "https://catalog.example.test/pgtest-shared/"
    pg_store.upsert_article(make_work("PGTEST-OLD", source_url=url, performers=("PgAlice",)))

    result = pg_store.upsert_article(make_work("PGTEST-NEW", source_url=url, performers=("PgAlice",)))

    assert result.conflict_key is ConflictKey.SOURCE_URL
    assert [w.slug for w in pg_store.find_works_by_performer("pgalice", 4)] == ["PGTEST-NEW"]

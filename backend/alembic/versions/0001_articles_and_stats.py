"""Articles table and derived stats tables.

Revision ID: 0001_articles
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic.
revision = "0001_articles"
down_revision = None
branch_labels = None
depends_on = None


def _jsonb_list(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.JSONB(astext_type=sa.Text()),
        nullable=False,
        server_default=sa.text("'[]'::jsonb"),
    )


def _stat_table(name: str, key: str) -> None:
    op.create_table(
        name,
        sa.Column(key, sa.Text(), nullable=False),
        sa.Column("work_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("latest_published_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint(key),
    )


def upgrade() -> None:
    op.create_table(
        "articles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False, comment="work|performer|topic"),
        sa.Column("slug", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        _jsonb_list("images"),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("affiliate_url", sa.Text(), nullable=True),
        sa.Column("embed_html", sa.Text(), nullable=True),
        _jsonb_list("meta_genres"),
        _jsonb_list("meta_makers"),
        _jsonb_list("related_works"),
        _jsonb_list("related_performers"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fetched_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ux_articles_slug", "articles", ["slug"], unique=True)
    op.create_index("ux_articles_source_url", "articles", ["source_url"], unique=True)
    op.create_index("ix_articles_type_published_at", "articles", ["type", "published_at"])
    # Performer lookups use JSONB containment on related_performers.
    op.create_index(
        "ix_articles_related_performers",
        "articles",
        ["related_performers"],
        postgresql_using="gin",
    )

    _stat_table("performer_stats", "performer")
    _stat_table("genre_stats", "genre")
    _stat_table("maker_stats", "maker")


def downgrade() -> None:
    op.drop_table("maker_stats")
    op.drop_table("genre_stats")
    op.drop_table("performer_stats")
    op.drop_index("ix_articles_related_performers", table_name="articles")
    op.drop_index("ix_articles_type_published_at", table_name="articles")
    op.drop_index("ux_articles_source_url", table_name="articles")
    op.drop_index("ux_articles_slug", table_name="articles")
    op.drop_table("articles")

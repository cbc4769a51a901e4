from __future__ import annotations

"""Relation discovery between articles.

- Topic-style articles: related works picked from the latest works by tag keywords.
- Works: performer co-occurrence across the store, strengthened by shared
  maker/genre facts. Results are capped, deduplicated and never self-referencing.
"""

import logging
from typing import Iterable, Optional, Sequence

from app.schemas.article import Article, ArticleType
from ingestion.core.events import log_event
from ingestion.core.store import ArticleStore
from ingestion.core.tagging import (
    GENRE_LABEL,
    MAKER_LABEL,
    append_tag_summary,
    extract_tags,
    ordered_tags,
    tag_keywords,
)


logger = logging.getLogger("avinfo.ingestion.linker")

TOPIC_POOL_SIZE = 20
TOPIC_RELATED_LIMIT = 6
TOPIC_PERFORMER_LIMIT = 6
WORKS_PER_PERFORMER = 4
PERFORMER_RELATED_LIMIT = 8
META_POOL_SIZE = 80
META_RELATED_LIMIT = 4


def pick_related(
    pool: Sequence[Article],
    tags: Iterable[str],
    limit: int = TOPIC_RELATED_LIMIT,
    *,
    exclude: Optional[str] = None,
) -> list[str]:
    """Slugs of up to `limit` candidates whose title mentions any tag keyword.

    With no tags, or when no candidate matches, falls back to pool order.
    """
    candidates = [a for a in pool if a.slug != exclude]
    tag_list = list(tags)
    if not tag_list:
        return [a.slug for a in candidates[:limit]]

    keywords = [k for tag in tag_list for k in tag_keywords(tag)]
    filtered = [a for a in candidates if any(k in a.title for k in keywords)]
    chosen = filtered or candidates
    return list(dict.fromkeys(a.slug for a in chosen))[:limit]


def link_topic(article: Article, store: ArticleStore, *, pool: Optional[Sequence[Article]] = None) -> list[str]:
    """Attach related works/performers and a tag digest to a topic-style article.

    Returns the tags found in the article's title and summary.
    """
    works = list(pool) if pool is not None else store.get_latest_by_type(ArticleType.WORK, TOPIC_POOL_SIZE)
    tags = ordered_tags(extract_tags(f"{article.title} {article.summary}"))

    related = pick_related(works, tags, TOPIC_RELATED_LIMIT, exclude=article.slug)
    chosen = set(related)
    performers: list[str] = []
    for work in works:
        if work.slug in chosen:
            performers.extend(work.related_performers)

    article.related_works = related
    article.related_performers = list(dict.fromkeys(performers))[:TOPIC_PERFORMER_LIMIT]
    article.body = append_tag_summary(article.body, tags)
    return tags


def _meta_facts(article: Article) -> list[str]:
    facts = article.body_facts()
    return [facts[label] for label in (MAKER_LABEL, GENRE_LABEL) if facts.get(label)]


def link_work(article: Article, store: ArticleStore) -> list[str]:
    """Related works for a catalog work: shared performers first, then shared maker/genre."""
    by_performer: list[str] = []
    for performer in article.related_performers:
        for work in store.find_works_by_performer(performer, WORKS_PER_PERFORMER):
            if work.slug != article.slug:
                by_performer.append(work.slug)
    related = list(dict.fromkeys(by_performer))[:PERFORMER_RELATED_LIMIT]

    facts = _meta_facts(article)
    if facts:
        same_meta = [
            work.slug
            for work in store.get_latest_by_type(ArticleType.WORK, META_POOL_SIZE)
            if work.slug != article.slug and any(fact in work.body for fact in facts)
        ][:META_RELATED_LIMIT]
        related = list(dict.fromkeys(related + same_meta))

    article.related_works = [slug for slug in related if slug != article.slug]
    log_event(
        logger,
        "work_linked",
        level=logging.DEBUG,
        slug=article.slug,
        related=len(article.related_works),
    )
    return article.related_works

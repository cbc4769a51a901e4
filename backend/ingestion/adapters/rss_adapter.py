from __future__ import annotations

"""RSS adapter.

Scope:
- Fetch RSS/Atom feeds through the retrying client; parse with feedparser.
- Normalize entries into topic Articles keyed by a digest of the entry link.
- Entries keep their own timestamp when the feed provides one.

Non-goals (explicit):
- No full-article fetching or scraping of linked pages.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import feedparser

from app.schemas.article import Article, ArticleType
from ingestion.core.adapter import BaseAdapter, RawItem
from ingestion.core.dedup import feed_entry_slug
from ingestion.core.errors import RemoteApiError
from ingestion.core.events import log_event
from ingestion.core.fetch_context import FetchContext
from ingestion.core.settings import IngestSettings
from ingestion.core.text import limit_text, strip_html


UTC = timezone.utc
logger = logging.getLogger("avinfo.ingestion.rss")


def _to_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _entry_time(entry: Any) -> Optional[datetime]:
    # feedparser provides .published_parsed / .updated_parsed (time.struct_time, UTC)
    for key in ("published_parsed", "updated_parsed"):
        st = entry.get(key) if hasattr(entry, "get") else getattr(entry, key, None)
        if st:
            try:
                return _to_utc(datetime(*st[:6], tzinfo=UTC))
            except (TypeError, ValueError):
                continue
    return None


def parse_feed(body: str, *, feed_url: str, max_items: int) -> list[RawItem]:
    feed = feedparser.parse(body)
    feed_title = strip_html(str(feed.feed.get("title") or "")) if feed.feed else ""
    items: list[RawItem] = []
    for entry in feed.entries or []:
        link = str(entry.get("link") or "").strip()
        if not link:
            continue
        items.append(
            RawItem(
                source_key=RssAdapter.source_key,
                payload={
                    "title": strip_html(str(entry.get("title") or "")),
                    "summary": strip_html(str(entry.get("summary") or "")),
                    "link": link,
                    "published_at": _entry_time(entry),
                    "feed_title": feed_title,
                    "feed_url": feed_url,
                },
            )
        )
        if len(items) >= max_items:
            break
    return items


def normalize_rss_entry(raw: dict[str, Any], published_at: datetime) -> Optional[Article]:
    link = str(raw.get("link") or "").strip()
    title = str(raw.get("title") or "").strip()
    if not link or not title:
        return None
    summary = str(raw.get("summary") or "").strip()
    feed_title = str(raw.get("feed_title") or "").strip()

    lines = [
        f"出典: {feed_title}" if feed_title else None,
        f"概要: {limit_text(summary, 300)}" if summary else None,
        f"リンク: {link}",
    ]
    return Article(
        type=ArticleType.TOPIC,
        slug=feed_entry_slug(link),
        title=title,
        summary=limit_text(summary or title, 140),
        body="\n".join(line for line in lines if line),
        source_url=link,
        published_at=published_at,
    )


class RssAdapter(BaseAdapter):
    source_key = "rss"

    def __init__(self, settings: IngestSettings) -> None:
        self.settings = settings

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        urls = self.settings.rss_feed_urls
        if not urls:
            log_event(logger, "source_skipped", level=logging.WARNING, source_key=self.source_key, reason="missing RSS_FEED_URLS")
            return []

        items: list[RawItem] = []
        for url in urls:
            response = await context.client.fetch(url)
            if not response.is_success:
                raise RemoteApiError(
                    f"RSS fetch error: {response.status_code} {url}",
                    status_code=response.status_code,
                    url=url,
                )
            parsed = parse_feed(response.text, feed_url=url, max_items=self.settings.rss_max_items)
            log_event(logger, "rss_feed_parsed", url=url, entries=len(parsed))
            items.extend(parsed)
        return items

    def publish_time(self, raw_item: RawItem, index: int, total: int, context: FetchContext) -> datetime:
        own = raw_item.payload.get("published_at")
        if isinstance(own, datetime):
            return own
        return super().publish_time(raw_item, index, total, context)

    def normalize(self, raw_item: RawItem, published_at: datetime) -> Optional[Article]:
        return normalize_rss_entry(raw_item.payload, published_at)

from __future__ import annotations

"""BaseAdapter contract.

- `fetch` returns raw, source-shaped items; no normalization happens there.
  Missing credentials or configuration -> log a skip and return [].
  Remote failures after retries raise; the orchestrator isolates them per source.
- `normalize` is pure: raw item + publish timestamp -> Article, or None when the
  item lacks identifying or monetization fields (counted as a skip).
- `link` enriches related-* fields before the first write.
"""

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from app.schemas.article import Article
from ingestion.core.fetch_context import FetchContext
from ingestion.core.linker import link_topic
from ingestion.core.scheduler import schedule_published_at


@dataclass(frozen=True, slots=True)
class RawItem:
    """Adapter-specific raw unit, safe to keep in-memory for normalization."""

    source_key: str
    payload: dict[str, Any]


class BaseAdapter(abc.ABC):
    """Abstract source adapter."""

    source_key: str  # e.g. "catalog" | "rss" | "gsheet" | "topics"

    @abc.abstractmethod
    async def fetch(self, context: FetchContext) -> list[RawItem]:
        """Fetch raw items for this source."""

    @abc.abstractmethod
    def normalize(self, raw_item: RawItem, published_at: datetime) -> Optional[Article]:
        """Map a raw item into an Article, or None to drop it."""

    def publish_time(self, raw_item: RawItem, index: int, total: int, context: FetchContext) -> datetime:
        s = context.settings
        return schedule_published_at(
            index,
            total,
            s.publish_window_start,
            s.publish_window_end,
            now=context.started_at,
            tz=s.publish_timezone,
        )

    def link(self, article: Article, context: FetchContext) -> None:
        link_topic(article, context.store)

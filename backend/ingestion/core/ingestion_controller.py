"""Per-source pipeline: fetch -> normalize -> link -> upsert.

Work inside one pipeline is sequential; upserts for the items of one source are
issued one at a time so log order follows fetch order. Errors propagate to the
orchestrator, which isolates them per source.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass

from ingestion.core.adapter import BaseAdapter
from ingestion.core.events import log_event
from ingestion.core.fetch_context import FetchContext
from ingestion.core.store import UpsertStatus


logger = logging.getLogger("avinfo.ingestion.pipeline")


@dataclass(slots=True)
class SourceReport:
    fetched: int = 0
    upserted: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class IngestionController:
    """Runs one adapter end to end against the shared run context."""

    def __init__(self, adapter: BaseAdapter, context: FetchContext) -> None:
        self.adapter = adapter
        self.context = context

    async def run(self) -> SourceReport:
        adapter, context = self.adapter, self.context
        raw_items = await adapter.fetch(context)
        report = SourceReport(fetched=len(raw_items))
        total = len(raw_items)

        for index, raw in enumerate(raw_items):
            published_at = adapter.publish_time(raw, index, total, context)
            article = adapter.normalize(raw, published_at)
            if article is None:
                report.skipped += 1
                log_event(logger, "item_skipped", level=logging.DEBUG, source_key=adapter.source_key, index=index)
                continue

            # Store calls are blocking; they run off the event loop so sibling pipelines keep going.
            await asyncio.to_thread(adapter.link, article, context)
            result = await asyncio.to_thread(context.store.upsert_article, article)
            report.upserted += 1
            if result.status is UpsertStatus.CREATED:
                report.created += 1
            else:
                report.updated += 1
            log_event(
                logger,
                "article_upserted",
                source_key=adapter.source_key,
                slug=article.slug,
                status=result.status.value,
                conflict_key=result.conflict_key.value,
            )

        log_event(logger, "ingestion_source_summary", source_key=adapter.source_key, **report.as_dict())
        return report

"""Source adapters: one per ingestion source."""

from ingestion.adapters.catalog_adapter import CatalogAdapter
from ingestion.adapters.generated_adapter import DailyTopicAdapter, RankingAdapter, SummaryAdapter
from ingestion.adapters.rss_adapter import RssAdapter
from ingestion.adapters.sheet_adapter import SheetAdapter

__all__ = [
    "CatalogAdapter",
    "DailyTopicAdapter",
    "RankingAdapter",
    "RssAdapter",
    "SheetAdapter",
    "SummaryAdapter",
]

"""Ingestion core primitives shared by every source pipeline.

- Retrying HTTP client and miss detection
- Tagging, scheduling and cross-linking of normalized articles
- Idempotent article store with slug / source_url conflict handling
"""

from ingestion.core.adapter import BaseAdapter, RawItem
from ingestion.core.errors import (
    ConfigurationError,
    FetchError,
    IngestionError,
    PersistenceError,
    RemoteApiError,
)
from ingestion.core.fetch_context import FetchContext
from ingestion.core.ingestion_controller import IngestionController, SourceReport
from ingestion.core.network_client import RetryingClient
from ingestion.core.scheduler import schedule_published_at
from ingestion.core.settings import IngestSettings, RetryPolicy
from ingestion.core.store import ArticleStore, SqlArticleStore, UpsertResult, UpsertStatus

__all__ = [
    "ArticleStore",
    "BaseAdapter",
    "ConfigurationError",
    "FetchContext",
    "FetchError",
    "IngestSettings",
    "IngestionController",
    "IngestionError",
    "PersistenceError",
    "RawItem",
    "RemoteApiError",
    "RetryPolicy",
    "RetryingClient",
    "SourceReport",
    "SqlArticleStore",
    "UpsertResult",
    "UpsertStatus",
    "schedule_published_at",
]

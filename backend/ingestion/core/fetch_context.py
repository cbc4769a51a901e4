from __future__ import annotations

"""FetchContext: everything one ingestion run shares across source pipelines.

Built once per run; passed by reference. `known_slugs` is an immutable snapshot
read before any fetcher starts and never refreshed mid-run.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from ingestion.core.network_client import RetryingClient
from ingestion.core.settings import CatalogPaging, IngestSettings
from ingestion.core.store import ArticleStore


UTC = timezone.utc


@dataclass(frozen=True)
class FetchContext:
    settings: IngestSettings
    client: RetryingClient
    store: ArticleStore
    known_slugs: frozenset[str] = frozenset()
    archive: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def paging(self) -> CatalogPaging:
        return self.settings.catalog_paging(archive=self.archive)

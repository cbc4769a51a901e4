from __future__ import annotations

"""Spreadsheet adapter (Google Sheets via gspread).

Rows are curated by hand: one header row, then one work per row. A row needs a
slug and at least one of affiliate_url / embed_html; anything else is dropped.
"""

import asyncio
import json
import logging
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import gspread
from google.oauth2.service_account import Credentials

from app.schemas.article import Article, ArticleImage, ArticleType
from ingestion.core.adapter import BaseAdapter, RawItem
from ingestion.core.errors import ConfigurationError
from ingestion.core.events import log_event
from ingestion.core.fetch_context import FetchContext
from ingestion.core.miss import is_placeholder_image
from ingestion.core.settings import IngestSettings
from ingestion.core.text import slugify


UTC = timezone.utc
JST = timezone(timedelta(hours=9))
logger = logging.getLogger("avinfo.ingestion.gsheet")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]
SHEETS_EPOCH = datetime(1899, 12, 30, tzinfo=UTC)
MAX_IMAGE_COLUMNS = 10

_PLAIN_DATE = re.compile(r"^(\d{4})[/-](\d{1,2})[/-](\d{1,2})$")

RowsLoader = Callable[[], list[list[str]]]


def parse_published_at(value: Any, *, now: Optional[datetime] = None) -> datetime:
    """Sheet date serials, `YYYY/MM/DD` (JST midnight) or ISO-8601; else `now`."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return SHEETS_EPOCH + timedelta(days=float(value))
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        match = _PLAIN_DATE.match(raw)
        if match:
            y, m, d = (int(g) for g in match.groups())
            try:
                return datetime(y, m, d, tzinfo=JST).astimezone(UTC)
            except ValueError:
                pass
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return now or datetime.now(tz=UTC)


def parse_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if not isinstance(value, str):
        return []
    raw = value.strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return []
        return [str(v) for v in parsed] if isinstance(parsed, list) else []
    return [item.strip() for item in re.split(r"[,\n]", raw) if item.strip()]


def rows_to_records(rows: list[list[str]]) -> list[dict[str, str]]:
    if len(rows) <= 1:
        return []
    headers = [str(h).strip() for h in rows[0]]
    records = []
    for row in rows[1:]:
        records.append({h: (str(row[i]) if i < len(row) and row[i] is not None else "") for i, h in enumerate(headers)})
    return records


def normalize_sheet_row(record: dict[str, str], *, now: Optional[datetime] = None) -> Optional[Article]:
    slug = (record.get("slug") or "").strip()
    if not slug:
        return None
    affiliate_url = (record.get("affiliate_url") or "").strip() or None
    embed_html = (record.get("embed_html") or "").strip() or None
    if not affiliate_url and not embed_html:
        return None

    title = (record.get("title") or "").strip()
    source_url = (record.get("source_url") or "").strip() or affiliate_url or f"sheet://{slug}"
    images = [
        ArticleImage(url=url, alt=title or "image")
        for url in ((record.get(f"image_{i}") or "").strip() for i in range(1, MAX_IMAGE_COLUMNS + 1))
        if url and not is_placeholder_image(url)
    ]
    type_value = (record.get("type") or "").strip()
    article_type = ArticleType(type_value) if type_value in {t.value for t in ArticleType} else ArticleType.WORK

    return Article(
        type=article_type,
        slug=slug,
        title=title,
        summary=(record.get("summary") or "").strip() or f"{title} の作品情報。",
        body=(record.get("body") or "").strip() or title,
        images=images,
        source_url=source_url,
        affiliate_url=affiliate_url,
        embed_html=embed_html,
        related_performers=[s for s in (slugify(v) for v in parse_list(record.get("related_actresses"))) if s],
        published_at=parse_published_at(record.get("published_at"), now=now),
    )


def load_service_account(settings: IngestSettings, *, base_dir: Optional[Path] = None) -> Optional[dict[str, Any]]:
    if settings.google_service_account_json:
        try:
            return json.loads(settings.google_service_account_json)
        except ValueError as exc:
            raise ConfigurationError("GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON") from exc
    base = base_dir or Path.cwd()
    path = Path(settings.google_service_account_file) if settings.google_service_account_file else Path("service_account.json")
    if not path.is_absolute():
        path = base / path
    if path.is_file():
        return json.loads(path.read_text(encoding="utf-8"))
    return None


class SheetAdapter(BaseAdapter):
    source_key = "gsheet"

    def __init__(self, settings: IngestSettings, *, rows_loader: Optional[RowsLoader] = None) -> None:
        self.settings = settings
        self._rows_loader = rows_loader

    def _gspread_loader(self, info: dict[str, Any]) -> RowsLoader:
        s = self.settings

        def load() -> list[list[str]]:
            creds = Credentials.from_service_account_info(info, scopes=SCOPES)
            client = gspread.authorize(creds)
            worksheet = client.open_by_key(s.gsheets_spreadsheet_id).worksheet(s.gsheets_sheet_name)
            return worksheet.get_values("A1:Z")

        return load

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        loader = self._rows_loader
        if loader is None:
            if not self.settings.gsheets_spreadsheet_id:
                log_event(logger, "source_skipped", level=logging.WARNING, source_key=self.source_key, reason="missing GSHEETS_SPREADSHEET_ID")
                return []
            info = load_service_account(self.settings)
            if not info:
                log_event(logger, "source_skipped", level=logging.WARNING, source_key=self.source_key, reason="missing service account credentials")
                return []
            loader = self._gspread_loader(info)

        # gspread is synchronous; keep the event loop free for sibling sources.
        rows = await asyncio.to_thread(loader)
        records = rows_to_records(rows)
        return [RawItem(source_key=self.source_key, payload=record) for record in records]

    def publish_time(self, raw_item: RawItem, index: int, total: int, context: FetchContext) -> datetime:
        return parse_published_at(raw_item.payload.get("published_at"), now=context.started_at)

    def normalize(self, raw_item: RawItem, published_at: datetime) -> Optional[Article]:
        article = normalize_sheet_row(raw_item.payload, now=published_at)
        if article is not None:
            article.published_at = published_at
        return article

    def link(self, article: Article, context: FetchContext) -> None:
        # Curated rows carry their own relations.
        return None

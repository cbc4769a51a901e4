from __future__ import annotations

"""Ingestion settings.

Built once at process start from the environment (after `.env` loading) and
passed by reference into every component. Business logic never reads
`os.environ` directly.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ingestion.core.errors import ConfigurationError


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    retries: int = 2
    timeout_seconds: float = 8.0
    backoff_seconds: float = 0.8


@dataclass(frozen=True, slots=True)
class CatalogPaging:
    """Catalog paging parameters for one run."""

    offset_start: int
    max_pages: int
    target_new: int


class IngestSettings(BaseModel):
    # Catalog API credentials and query
    dmm_api_id: str = ""
    dmm_affiliate_id: str = ""
    dmm_link_affiliate_id: str = ""
    dmm_embed_affiliate_id: str = ""
    dmm_site: str = "FANZA"
    dmm_service: str = "digital"
    dmm_floor: str = "videoa"
    dmm_service_param: str = "service"
    dmm_floor_param: str = "floor"
    dmm_sort: str = "date"

    # Pacing
    hits_per_run: int = Field(default=3, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)
    max_pages: int = Field(default=3, ge=1)
    offset_start: int = Field(default=1, ge=1)
    archive_offset_start: int = Field(default=1, ge=1)
    archive_pages: int = Field(default=5, ge=1)
    archive_target: Optional[int] = Field(default=None, ge=1)
    known_slug_limit: int = Field(default=5000, ge=1)

    # Affiliate link / embed construction
    affiliate_link_style: str = ""
    affiliate_url_template: str = ""
    embed_size: str = "1280_720"

    # Feature toggles
    skip_vr: bool = True
    validate_embed: bool = False
    validate_thumbnail: bool = False
    refresh_stats: bool = True

    # HTTP
    fetch_retries: int = Field(default=2, ge=0)
    fetch_timeout_ms: int = Field(default=8000, ge=1)
    fetch_backoff_ms: int = Field(default=800, ge=0)
    user_agent: str = "av-info-ingest/1.0"

    # Publish window (hours of the local day)
    publish_window_start: int = Field(default=9, ge=0, le=24)
    publish_window_end: int = Field(default=23, ge=0, le=24)
    publish_timezone: str = "Asia/Tokyo"

    # RSS
    rss_feed_urls: tuple[str, ...] = ()
    rss_max_items: int = Field(default=5, ge=1)

    # Spreadsheet
    gsheets_spreadsheet_id: str = ""
    gsheets_sheet_name: str = "embeds"
    google_service_account_json: str = ""
    google_service_account_file: str = ""

    # Notification
    notify_webhook_url: str = ""

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_link_style(self) -> "IngestSettings":
        if self.affiliate_link_style not in ("", "utm", "template", "param"):
            raise ValueError(f"unknown affiliate link style: {self.affiliate_link_style!r}")
        return self

    @property
    def link_affiliate_id(self) -> str:
        return self.dmm_link_affiliate_id or self.dmm_affiliate_id

    @property
    def embed_affiliate_id(self) -> str:
        return self.dmm_embed_affiliate_id or self.dmm_link_affiliate_id or self.dmm_affiliate_id

    @property
    def has_catalog_credentials(self) -> bool:
        return bool(self.dmm_api_id and self.dmm_affiliate_id)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            retries=self.fetch_retries,
            timeout_seconds=self.fetch_timeout_ms / 1000.0,
            backoff_seconds=self.fetch_backoff_ms / 1000.0,
        )

    def catalog_paging(self, *, archive: bool = False) -> CatalogPaging:
        if archive:
            return CatalogPaging(
                offset_start=self.archive_offset_start,
                max_pages=self.archive_pages,
                target_new=self.archive_target or self.hits_per_run,
            )
        return CatalogPaging(
            offset_start=self.offset_start,
            max_pages=self.max_pages,
            target_new=self.hits_per_run,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IngestSettings":
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for field, var in _ENV_KEYS.items():
            raw = env.get(var)
            if raw is None or raw.strip() == "":
                continue
            values[field] = raw.strip()

        for field in _BOOL_FIELDS:
            if field in values:
                values[field] = _parse_bool(field, str(values[field]))

        if "rss_feed_urls" in values:
            values["rss_feed_urls"] = tuple(
                u.strip() for u in str(values["rss_feed_urls"]).replace("\n", ",").split(",") if u.strip()
            )

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid ingestion settings: {exc}") from exc


def _parse_bool(field: str, raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(f"Invalid boolean for {field}: {raw!r}")


_BOOL_FIELDS = ("skip_vr", "validate_embed", "validate_thumbnail", "refresh_stats")

_ENV_KEYS: dict[str, str] = {
    "dmm_api_id": "DMM_API_ID",
    "dmm_affiliate_id": "DMM_AFFILIATE_ID",
    "dmm_link_affiliate_id": "DMM_LINK_AFFILIATE_ID",
    "dmm_embed_affiliate_id": "DMM_EMBED_AFFILIATE_ID",
    "dmm_site": "DMM_SITE",
    "dmm_service": "DMM_SERVICE",
    "dmm_floor": "DMM_FLOOR",
    "dmm_service_param": "DMM_SERVICE_PARAM",
    "dmm_floor_param": "DMM_FLOOR_PARAM",
    "dmm_sort": "DMM_SORT",
    "hits_per_run": "DMM_HITS_PER_RUN",
    "page_size": "DMM_PAGE_SIZE",
    "max_pages": "DMM_MAX_PAGES",
    "offset_start": "DMM_OFFSET_START",
    "archive_offset_start": "DMM_ARCHIVE_OFFSET_START",
    "archive_pages": "DMM_ARCHIVE_PAGES",
    "archive_target": "DMM_ARCHIVE_TARGET",
    "known_slug_limit": "KNOWN_SLUG_LIMIT",
    "affiliate_link_style": "DMM_AFFILIATE_LINK_STYLE",
    "affiliate_url_template": "DMM_NEW_AFFILIATE_URL_TEMPLATE",
    "embed_size": "DMM_EMBED_SIZE",
    "skip_vr": "DMM_SKIP_VR",
    "validate_embed": "DMM_VALIDATE_EMBED",
    "validate_thumbnail": "DMM_VALIDATE_THUMBNAIL",
    "refresh_stats": "REFRESH_STATS",
    "fetch_retries": "FETCH_RETRIES",
    "fetch_timeout_ms": "FETCH_TIMEOUT_MS",
    "fetch_backoff_ms": "FETCH_BACKOFF_MS",
    "user_agent": "FETCH_USER_AGENT",
    "publish_window_start": "PUBLISH_WINDOW_START",
    "publish_window_end": "PUBLISH_WINDOW_END",
    "publish_timezone": "PUBLISH_TIMEZONE",
    "rss_feed_urls": "RSS_FEED_URLS",
    "rss_max_items": "RSS_MAX_ITEMS",
    "gsheets_spreadsheet_id": "GSHEETS_SPREADSHEET_ID",
    "gsheets_sheet_name": "GSHEETS_SHEET_NAME",
    "google_service_account_json": "GOOGLE_SERVICE_ACCOUNT_JSON",
    "google_service_account_file": "GOOGLE_SERVICE_ACCOUNT_FILE",
    "notify_webhook_url": "NOTIFY_WEBHOOK_URL",
}

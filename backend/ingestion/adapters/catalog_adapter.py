from __future__ import annotations

"""Affiliate catalog adapter (DMM ItemList API v3).

Scope:
- Page the listing API by offset until enough *new* works are collected or the
  page ceiling is hit.
- Drop works that are already known, placeholder-only, or a disallowed variant.
- Prefer the constructed high-resolution package image; optionally verify it
  and the embeddable player with live requests.
- Normalize into the canonical Article (type=work).

Non-goals (explicit):
- No persistence here; the pipeline owns upserts.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from app.schemas.article import Article, ArticleImage, ArticleType
from ingestion.core.adapter import BaseAdapter, RawItem
from ingestion.core.errors import FetchError, RemoteApiError
from ingestion.core.events import log_event
from ingestion.core.fetch_context import FetchContext
from ingestion.core.linker import link_work
from ingestion.core.miss import is_placeholder_image
from ingestion.core.settings import IngestSettings
from ingestion.core.tagging import GENRE_LABEL, MAKER_LABEL, meta_values
from ingestion.core.text import limit_text, slugify


UTC = timezone.utc
logger = logging.getLogger("avinfo.ingestion.catalog")

CATALOG_ENDPOINT = "https://api.dmm.com/affiliate/v3/ItemList"
PACKAGE_IMAGE_TEMPLATE = "https://pics.dmm.co.jp/digital/video/{cid}/{cid}pl.jpg"
LITEVIDEO_TEMPLATE = "https://www.dmm.co.jp/litevideo/-/part/=/affi_id={affiliate_id}/cid={cid}/size={size}/"
MAX_IMAGES = 5

UTM_PARAMS = {
    "utm_medium": "dmm_affiliate",
    "utm_source": "{affiliate_id}",
    "utm_term": "fanza.co.jp",
    "utm_campaign": "affiliate_search_link",
    "utm_content": "link",
}

_VR_SLUG = re.compile(r"VR\d")


# -- pure helpers -----------------------------------------------------------


def _names(entries: Any) -> list[str]:
    if not isinstance(entries, list):
        return []
    return [str(e["name"]).strip() for e in entries if isinstance(e, dict) and e.get("name")]


def _first_name(entries: Any) -> Optional[str]:
    names = _names(entries)
    return names[0] if names else None


def _collect_image_urls(value: Any, out: list[str]) -> None:
    if not value:
        return
    if isinstance(value, str):
        out.append(value)
    elif isinstance(value, list):
        for entry in value:
            _collect_image_urls(entry, out)
    elif isinstance(value, dict):
        for entry in value.values():
            _collect_image_urls(entry, out)


def api_image_urls(item: dict[str, Any]) -> list[str]:
    image_url = item.get("imageURL") or {}
    urls: list[str] = []
    for key in ("large", "list", "small"):
        _collect_image_urls(image_url.get(key), urls)
    _collect_image_urls(image_url.get("sample"), urls)
    _collect_image_urls(item.get("sampleImageURL"), urls)
    return list(dict.fromkeys(u for u in urls if u))


def package_image_url(content_id: str) -> str:
    cid = content_id.strip().lower()
    return PACKAGE_IMAGE_TEMPLATE.format(cid=cid)


def is_disallowed_variant(natural_key: str, genres: Iterable[str]) -> bool:
    """VR titles: `VR<digit>` in the natural key or a genre naming VR."""
    if _VR_SLUG.search(natural_key.upper()):
        return True
    return any("VR" in g.upper() for g in genres)


def _set_query(url: str, params: dict[str, str], *, overwrite: bool = True) -> str:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{urlencode(params)}"
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    for key, value in params.items():
        if overwrite or key not in query:
            query[key] = value
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


def build_affiliate_url(canonical_url: str, affiliate_id: str, *, link_style: str = "", template: str = "") -> Optional[str]:
    """Affiliate link for a canonical URL; first matching style wins.

    1. `utm`: tracking query parameters injected into the canonical URL.
    2. a configured template: `{url}`, `{encoded_url}`, `{affiliate_id}` substituted.
    3. default: `aff_id` appended (kept if already present).
    """
    if not canonical_url or not affiliate_id:
        return None
    if link_style == "utm":
        params = {k: v.format(affiliate_id=affiliate_id) for k, v in UTM_PARAMS.items()}
        return _set_query(canonical_url, params)
    if template and link_style in ("", "template"):
        return (
            template.replace("{encoded_url}", quote(canonical_url, safe=""))
            .replace("{url}", canonical_url)
            .replace("{affiliate_id}", affiliate_id)
        )
    return _set_query(canonical_url, {"aff_id": affiliate_id}, overwrite=False)


def litevideo_url(content_id: str, affiliate_id: str, size: str = "1280_720") -> Optional[str]:
    cid = (content_id or "").strip().lower()
    if not cid or not affiliate_id:
        return None
    return LITEVIDEO_TEMPLATE.format(affiliate_id=affiliate_id, cid=cid, size=size)


def build_embed_html(player_url: Optional[str]) -> Optional[str]:
    if not player_url:
        return None
    return (
        '<div style="width:100%; padding-top: 75%; position:relative;">'
        '<iframe width="100%" height="100%" max-width="1280px" '
        'style="position: absolute; top: 0; left: 0;" '
        f'src="{player_url}" scrolling="no" frameborder="0" allowfullscreen></iframe></div>'
    )


def build_work_body(raw: dict[str, Any], work_code: str) -> str:
    performers = [p for p in raw.get("actresses") or [] if p]
    genres = [g for g in raw.get("genre") or [] if g]
    lines = [
        f"作品番号: {work_code}",
        f"出演: {' / '.join(performers)}" if performers else None,
        f"{MAKER_LABEL}: {raw['maker']}" if raw.get("maker") else None,
        f"レーベル: {raw['label']}" if raw.get("label") else None,
        f"シリーズ: {raw['series']}" if raw.get("series") else None,
        f"{GENRE_LABEL}: {' / '.join(genres)}" if genres else None,
        f"配信日: {raw['release_date']}" if raw.get("release_date") else None,
        f"概要: {limit_text(raw.get('title') or '', 120)}" if raw.get("title") else None,
    ]
    return "\n".join(line for line in lines if line)


def normalize_catalog_work(raw: dict[str, Any], published_at: datetime, settings: IngestSettings) -> Optional[Article]:
    content_id = str(raw.get("content_id") or "").strip()
    canonical_url = str(raw.get("canonical_url") or "").strip()
    if not content_id or not canonical_url:
        return None

    affiliate_url = raw.get("affiliate_url") or build_affiliate_url(
        canonical_url,
        settings.link_affiliate_id,
        link_style=settings.affiliate_link_style,
        template=settings.affiliate_url_template,
    )
    if "embed_html" in raw:
        # The fetcher already decided: a validated snippet, or None after a miss.
        embed_html = raw.get("embed_html")
    else:
        embed_html = build_embed_html(litevideo_url(content_id, settings.embed_affiliate_id, settings.embed_size))
    if not affiliate_url and not embed_html:
        return None

    work_code = content_id.upper()
    title = str(raw.get("title") or "(untitled)")
    body = build_work_body(raw, work_code)
    makers, genres = meta_values(body)
    fetched_at = raw.get("fetched_at") or datetime.now(tz=UTC)

    return Article(
        type=ArticleType.WORK,
        slug=work_code,
        title=title,
        summary=limit_text(f"{title} の作品情報。", 140),
        body=body,
        images=[ArticleImage(**img) for img in raw.get("images") or [] if not is_placeholder_image(img.get("url"))],
        source_url=canonical_url,
        affiliate_url=affiliate_url,
        embed_html=embed_html,
        meta_genres=genres,
        meta_makers=makers,
        related_performers=[s for s in (slugify(n) for n in raw.get("actresses") or []) if s],
        published_at=published_at,
        fetched_at=fetched_at,
    )


# -- adapter ----------------------------------------------------------------


class CatalogAdapter(BaseAdapter):
    source_key = "catalog"

    def __init__(self, settings: IngestSettings) -> None:
        self.settings = settings

    def _query(self, offset: int) -> dict[str, str]:
        s = self.settings
        params = {
            "api_id": s.dmm_api_id,
            "affiliate_id": s.dmm_affiliate_id,
            "site": s.dmm_site,
            "sort": s.dmm_sort,
            "hits": str(s.page_size),
            "offset": str(offset),
            "output": "json",
        }
        if s.dmm_service:
            params[s.dmm_service_param] = s.dmm_service
        if s.dmm_floor:
            params[s.dmm_floor_param] = s.dmm_floor
        return params

    async def _fetch_page(self, context: FetchContext, offset: int) -> list[dict[str, Any]]:
        response = await context.client.fetch(CATALOG_ENDPOINT, params=self._query(offset))
        if not response.is_success:
            raise RemoteApiError(
                f"Catalog API error: {response.status_code} {response.reason_phrase} {response.text[:200]}",
                status_code=response.status_code,
                url=CATALOG_ENDPOINT,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError("Catalog API returned a non-JSON body", url=CATALOG_ENDPOINT) from exc
        items = ((data or {}).get("result") or {}).get("items") or []
        return [item for item in items if isinstance(item, dict)]

    async def _select_images(self, context: FetchContext, content_id: str, title: str, api_urls: list[str]) -> Optional[list[dict[str, str]]]:
        """Ordered image list, or None when the work only has placeholder artwork."""
        real = [u for u in api_urls if not is_placeholder_image(u)]
        if api_urls and not real and not self.settings.validate_thumbnail:
            return None

        candidates: list[str] = []
        constructed = package_image_url(content_id)
        if self.settings.validate_thumbnail:
            if await context.client.exists(constructed):
                candidates.append(constructed)
            elif api_urls and not real:
                return None
        elif real:
            candidates.append(constructed)
        candidates.extend(real)

        urls = list(dict.fromkeys(candidates))[:MAX_IMAGES]
        return [{"url": u, "alt": f"{title} {i + 1}"} for i, u in enumerate(urls)]

    async def _validated_embed(self, context: FetchContext, content_id: str) -> Optional[str]:
        s = self.settings
        player_url = litevideo_url(content_id, s.embed_affiliate_id, s.embed_size)
        if player_url is None:
            return None
        if await context.client.exists(player_url, method="GET"):
            return build_embed_html(player_url)
        log_event(logger, "embed_discarded", content_id=content_id)
        return None

    async def _build_raw(self, context: FetchContext, item: dict[str, Any], seen: set[str]) -> Optional[RawItem]:
        content_id = str(item.get("content_id") or item.get("product_id") or item.get("goods_id") or "").strip()
        if not content_id:
            return None
        natural_key = content_id.upper()
        if natural_key in seen:
            return None

        info = item.get("iteminfo") or {}
        genres = _names(info.get("genre"))
        if self.settings.skip_vr and is_disallowed_variant(natural_key, genres):
            log_event(logger, "catalog_item_filtered", level=logging.DEBUG, slug=natural_key, reason="variant")
            return None

        title = str(item.get("title") or item.get("name") or "(untitled)")
        images = await self._select_images(context, content_id, title, api_image_urls(item))
        if images is None:
            log_event(logger, "catalog_item_filtered", level=logging.DEBUG, slug=natural_key, reason="placeholder")
            return None

        urls = item.get("URLS") or {}
        payload: dict[str, Any] = {
            "content_id": content_id,
            "title": title,
            "actresses": _names(info.get("actress")),
            "maker": _first_name(info.get("maker")),
            "label": _first_name(info.get("label")),
            "genre": genres,
            "series": _first_name(info.get("series")),
            "release_date": item.get("date") or item.get("release_date"),
            "images": images,
            "canonical_url": item.get("URL") or urls.get("pc") or item.get("affiliateURL") or urls.get("affiliate"),
            "affiliate_url": item.get("affiliateURL") or urls.get("affiliate"),
            "fetched_at": datetime.now(tz=UTC),
        }
        if self.settings.validate_embed:
            payload["embed_html"] = await self._validated_embed(context, content_id)
        return RawItem(source_key=self.source_key, payload=payload)

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        s = self.settings
        if not s.has_catalog_credentials:
            log_event(logger, "source_skipped", level=logging.WARNING, source_key=self.source_key, reason="missing DMM_API_ID or DMM_AFFILIATE_ID")
            return []

        paging = context.paging
        seen = set(context.known_slugs)
        collected: list[RawItem] = []
        for page in range(paging.max_pages):
            offset = paging.offset_start + page * s.page_size
            items = await self._fetch_page(context, offset)
            log_event(logger, "catalog_page", offset=offset, items=len(items), collected=len(collected))
            if not items:
                break
            for item in items:
                raw = await self._build_raw(context, item, seen)
                if raw is None:
                    continue
                seen.add(raw.payload["content_id"].upper())
                collected.append(raw)
                if len(collected) >= paging.target_new:
                    return collected
        return collected

    def normalize(self, raw_item: RawItem, published_at: datetime) -> Optional[Article]:
        return normalize_catalog_work(raw_item.payload, published_at, self.settings)

    def link(self, article: Article, context: FetchContext) -> None:
        link_work(article, context.store)

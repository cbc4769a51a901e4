from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from ingestion.adapters.catalog_adapter import (
    CatalogAdapter,
    build_affiliate_url,
    is_disallowed_variant,
    normalize_catalog_work,
)
from ingestion.core.errors import RemoteApiError
from ingestion.core.fetch_context import FetchContext
from ingestion.core.network_client import RetryingClient
from ingestion.core.settings import RetryPolicy

from conftest import make_settings


UTC = timezone.utc
PUBLISHED = datetime(2026, 10, 18, 0, 0, tzinfo=UTC)
PLACEHOLDER = "https://pics.dmm.co.jp/mono/movie/adult/now_printing/now_printing.jpg"


def _item(cid: str, *, image: str | None = "real", genres: tuple[str, ...] = ("単体作品",)) -> dict:
    item = {
        "content_id": cid,
        "title": f"{cid} タイトル",
        "URL": f"https://www.dmm.co.jp/digital/videoa/-/detail/=/cid={cid}/",
        "affiliateURL": f"https://al.dmm.co.jp/?lurl=cid%3D{cid}&af_id=aff-990",
        "date": "2026-10-01 10:00:00",
        "iteminfo": {
            "actress": [{"id": 1, "name": "山田 花子"}],
            "maker": [{"id": 2, "name": "S1"}],
            "genre": [{"id": 3, "name": g} for g in genres],
        },
    }
    if image == "real":
        item["imageURL"] = {"large": f"https://pics.dmm.co.jp/digital/video/{cid}/{cid}pl.jpg"}
    elif image == "placeholder":
        item["imageURL"] = {"large": PLACEHOLDER}
    return item


def _raw(**overrides) -> dict:
    raw = {
        "content_id": "abc00001",
        "title": "タイトル",
        "actresses": ["山田 花子"],
        "maker": "S1",
        "genre": ["単体作品", "ドラマ"],
        "images": [],
        "canonical_url": "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=abc00001/",
        "affiliate_url": None,
    }
    raw.update(overrides)
    return raw


def _context(store, settings, handler, **kwargs) -> tuple[FetchContext, RetryingClient]:
    client = RetryingClient(
        RetryPolicy(retries=0, timeout_seconds=2.0, backoff_seconds=0.0),
        transport=httpx.MockTransport(handler),
    )
    return FetchContext(settings=settings, client=client, store=store, **kwargs), client


def _api_handler(pages: dict[str, list[dict]], seen: list[httpx.Request] | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        offset = request.url.params.get("offset", "")
        return httpx.Response(200, json={"result": {"items": pages.get(offset, [])}})

    return handler


def _fetch(adapter: CatalogAdapter, context: FetchContext, client: RetryingClient):
    async def run():
        try:
            return await adapter.fetch(context)
        finally:
            await client.close()

    return asyncio.run(run())


# -- normalization ------------------------------------------------------------


def test_item_without_images_normalizes_with_empty_image_list():
    article = normalize_catalog_work(_raw(images=[]), PUBLISHED, make_settings())

    assert article is not None
    assert article.images == []
    assert article.slug == "ABC00001"
    assert article.related_performers == ["山田-花子"]
    assert article.meta_makers == ["S1"]
    assert article.meta_genres == ["単体作品", "ドラマ"]
    assert "ジャンル: 単体作品 / ドラマ" in article.body
    assert article.published_at == PUBLISHED


def test_placeholder_images_never_reach_the_article():
    images = [
        {"url": PLACEHOLDER, "alt": "package"},
        {"url": "https://pics.dmm.co.jp/digital/video/abc00001/abc00001pl.jpg", "alt": "package"},
    ]
    article = normalize_catalog_work(_raw(images=images), PUBLISHED, make_settings())

    assert [img.url for img in article.images] == [images[1]["url"]]


def test_work_without_performers_has_no_performer_line():
    article = normalize_catalog_work(_raw(actresses=[]), PUBLISHED, make_settings())
    assert "出演" not in article.body


def test_missing_identity_is_rejected():
    assert normalize_catalog_work(_raw(content_id=""), PUBLISHED, make_settings()) is None
    assert normalize_catalog_work(_raw(canonical_url=""), PUBLISHED, make_settings()) is None


def test_missing_monetization_is_rejected():
    settings = make_settings(dmm_affiliate_id="")
    assert normalize_catalog_work(_raw(), PUBLISHED, settings) is None


def test_embed_uses_embed_affiliate_id():
    settings = make_settings(dmm_embed_affiliate_id="embed-991")
    article = normalize_catalog_work(_raw(), PUBLISHED, settings)
    assert "affi_id=embed-991/cid=abc00001/size=1280_720/" in article.embed_html


def test_discarded_embed_is_not_rebuilt():
    article = normalize_catalog_work(_raw(embed_html=None), PUBLISHED, make_settings())
    assert article.embed_html is None
    assert article.affiliate_url is not None


def test_affiliate_url_styles():
    url = "https://www.dmm.co.jp/digital/videoa/-/detail/=/cid=abc00001/"

    utm = parse_qs(urlsplit(build_affiliate_url(url, "aff-990", link_style="utm")).query)
    assert utm["utm_source"] == ["aff-990"]
    assert utm["utm_medium"] == ["dmm_affiliate"]

    templated = build_affiliate_url(
        url, "aff-990", template="https://al.dmm.co.jp/?lurl={encoded_url}&af_id={affiliate_id}"
    )
    assert templated.startswith("https://al.dmm.co.jp/?lurl=https%3A%2F%2Fwww.dmm.co.jp")
    assert templated.endswith("&af_id=aff-990")

    assert build_affiliate_url(url, "aff-990").endswith("?aff_id=aff-990")
    assert build_affiliate_url(url + "?aff_id=keep", "aff-990").endswith("aff_id=keep")
    assert build_affiliate_url(url, "") is None


def test_disallowed_variant_detection():
    assert is_disallowed_variant("ABCVR00001", [])
    assert is_disallowed_variant("ABC00001", ["ハイクオリティVR"])
    assert not is_disallowed_variant("ABC00001", ["単体作品"])


# -- fetching -----------------------------------------------------------------


def test_fetch_skips_known_placeholder_and_vr_items(store):
    pages = {
        "1": [
            _item("abc00001"),
            _item("abc00002"),
            _item("abc00003", image="placeholder"),
            _item("abcvr00004"),
            _item("abc00005", image=None),
            _item("abc00006"),
        ]
    }
    settings = make_settings(hits_per_run=3)
    context, client = _context(store, settings, _api_handler(pages), known_slugs=frozenset({"ABC00002"}))

    raws = _fetch(CatalogAdapter(settings), context, client)

    assert [r.payload["content_id"] for r in raws] == ["abc00001", "abc00005", "abc00006"]
    images = {r.payload["content_id"]: r.payload["images"] for r in raws}
    assert images["abc00005"] == []
    assert images["abc00001"][0]["url"] == "https://pics.dmm.co.jp/digital/video/abc00001/abc00001pl.jpg"


def test_fetch_pages_until_target_or_empty_page(store):
    requests: list[httpx.Request] = []
    pages = {"1": [_item("abc00001")], "21": [_item("abc00002")], "41": []}
    settings = make_settings(hits_per_run=5, max_pages=5)
    context, client = _context(store, settings, _api_handler(pages, requests))

    raws = _fetch(CatalogAdapter(settings), context, client)

    assert len(raws) == 2
    assert [r.url.params["offset"] for r in requests] == ["1", "21", "41"]
    assert requests[0].url.params["api_id"] == "api-123"
    assert requests[0].url.params["hits"] == "20"


def test_fetch_stops_at_target_new(store):
    requests: list[httpx.Request] = []
    pages = {"1": [_item(f"abc0000{i}") for i in range(1, 6)], "21": [_item("abc00009")]}
    settings = make_settings(hits_per_run=2)
    context, client = _context(store, settings, _api_handler(pages, requests))

    raws = _fetch(CatalogAdapter(settings), context, client)

    assert len(raws) == 2
    assert len(requests) == 1


def test_archive_mode_uses_archive_paging(store):
    requests: list[httpx.Request] = []
    settings = make_settings(archive_offset_start=101, archive_pages=2)
    context, client = _context(store, settings, _api_handler({}, requests), archive=True)

    assert _fetch(CatalogAdapter(settings), context, client) == []
    assert [r.url.params["offset"] for r in requests] == ["101"]


def test_missing_credentials_skip_without_requests(store):
    requests: list[httpx.Request] = []
    settings = make_settings(dmm_api_id="")
    context, client = _context(store, settings, _api_handler({}, requests))

    assert _fetch(CatalogAdapter(settings), context, client) == []
    assert requests == []


def test_api_error_raises(store):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal error")

    settings = make_settings()
    context, client = _context(store, settings, handler)

    with pytest.raises(RemoteApiError):
        _fetch(CatalogAdapter(settings), context, client)


def test_validated_embed_is_discarded_on_soft_404(store):
    def handler(request: httpx.Request) -> httpx.Response:
        if "litevideo" in request.url.path:
            return httpx.Response(200, headers={"content-type": "text/html"}, text="お探しのページは見つかりません")
        return httpx.Response(200, json={"result": {"items": [_item("abc00001")]}})

    settings = make_settings(validate_embed=True, hits_per_run=1)
    context, client = _context(store, settings, handler)
    adapter = CatalogAdapter(settings)

    (raw,) = _fetch(adapter, context, client)
    article = adapter.normalize(raw, PUBLISHED)

    assert raw.payload["embed_html"] is None
    assert article.embed_html is None
    assert article.affiliate_url.startswith("https://al.dmm.co.jp/")

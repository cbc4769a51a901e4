from __future__ import annotations

"""Internally generated topic text: daily topics, performer rankings, digests.

No network access. Rankings and digests are derived from works already in the
store; daily topics come from date-stamped templates. All three normalize into
topic Articles and are linked to recent works by tag keywords.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo

from app.schemas.article import Article, ArticleType
from ingestion.core.adapter import BaseAdapter, RawItem
from ingestion.core.events import log_event
from ingestion.core.fetch_context import FetchContext
from ingestion.core.settings import IngestSettings
from ingestion.core.text import limit_text


logger = logging.getLogger("avinfo.ingestion.generated")

PERFORMER_LABEL = "出演"
RANKING_POOL = 100
RANKING_SIZE = 10
SUMMARY_POOL = 30
SUMMARY_MAKERS = 5

WEEKDAY_THEMES: tuple[tuple[str, str], ...] = (
    ("新人デビュー作特集", "今週デビューした新人の初作品をまとめてチェック。"),
    ("高画質・4K注目作", "高画質配信に対応した注目作をピックアップ。"),
    ("セール・キャンペーン情報", "期間限定セールや割引キャンペーンの対象作をまとめました。"),
    ("ドラマ・ストーリー作品特集", "ストーリー重視のドラマ作品を紹介します。"),
    ("コスプレ・制服特集", "コスプレや制服をテーマにした作品をピックアップ。"),
    ("総集編・ベスト盤まとめ", "総集編やベスト盤などのまとめ作品を紹介します。"),
    ("独占配信タイトル特集", "独占配信・限定販売のタイトルをまとめました。"),
)


def _local_day(context: FetchContext) -> datetime:
    return context.started_at.astimezone(ZoneInfo(context.settings.publish_timezone))


def normalize_generated_topic(raw: dict[str, Any], published_at: datetime) -> Optional[Article]:
    slug = str(raw.get("slug") or "").strip()
    title = str(raw.get("title") or "").strip()
    if not slug or not title:
        return None
    summary = str(raw.get("summary") or "").strip() or title
    lines = [str(line) for line in raw.get("lines") or [] if str(line).strip()]
    return Article(
        type=ArticleType.TOPIC,
        slug=slug,
        title=title,
        summary=limit_text(summary, 140),
        body="\n".join(lines) or summary,
        source_url=f"internal://{raw.get('kind', 'topic')}/{slug}",
        published_at=published_at,
    )


class _GeneratedAdapter(BaseAdapter):
    kind = "topic"

    def __init__(self, settings: IngestSettings) -> None:
        self.settings = settings

    def _raw(self, **payload: Any) -> RawItem:
        return RawItem(source_key=self.source_key, payload={"kind": self.kind, **payload})

    def normalize(self, raw_item: RawItem, published_at: datetime) -> Optional[Article]:
        return normalize_generated_topic(raw_item.payload, published_at)


class DailyTopicAdapter(_GeneratedAdapter):
    source_key = "topics"
    kind = "daily"

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        day = _local_day(context)
        stamp = f"{day:%Y%m%d}"
        label = f"{day.month}月{day.day}日"
        theme_title, theme_summary = WEEKDAY_THEMES[day.weekday()]
        return [
            self._raw(
                slug=f"daily-{stamp}-1",
                title=f"{label}の本日配信・新作まとめ",
                summary="本日配信の新作や注目作をピックアップしました。",
                lines=[f"日付: {day:%Y-%m-%d}", "内容: 本日配信の新作と注目作"],
            ),
            self._raw(
                slug=f"daily-{stamp}-2",
                title=f"{label}の{theme_title}",
                summary=theme_summary,
                lines=[f"日付: {day:%Y-%m-%d}", f"テーマ: {theme_title}"],
            ),
        ]


class RankingAdapter(_GeneratedAdapter):
    source_key = "rankings"
    kind = "ranking"

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        works = await asyncio.to_thread(context.store.get_latest_by_type, ArticleType.WORK, RANKING_POOL)
        counts: Counter[str] = Counter()
        for work in works:
            names = work.body_facts().get(PERFORMER_LABEL, "")
            # A performer counts once per work.
            counts.update(dict.fromkeys((n.strip() for n in names.split("/") if n.strip()), 1))
        if not counts:
            log_event(logger, "source_empty", source_key=self.source_key, reason="no performers in recent works")
            return []

        day = _local_day(context)
        top = counts.most_common(RANKING_SIZE)
        return [
            self._raw(
                slug=f"ranking-{day:%Y%m%d}",
                title=f"{day.month}月{day.day}日 注目女優ランキング",
                summary=f"最新{len(works)}作品の出演数から集計した人気女優ランキングです。",
                lines=[f"{rank}位: {name} ({count}作品)" for rank, (name, count) in enumerate(top, start=1)],
            )
        ]


class SummaryAdapter(_GeneratedAdapter):
    source_key = "summaries"
    kind = "summary"

    async def fetch(self, context: FetchContext) -> list[RawItem]:
        works = await asyncio.to_thread(context.store.get_latest_by_type, ArticleType.WORK, SUMMARY_POOL)
        if not works:
            log_event(logger, "source_empty", source_key=self.source_key, reason="no recent works")
            return []

        by_maker: dict[str, list[Article]] = defaultdict(list)
        for work in works:
            maker = work.meta_makers[0] if work.meta_makers else "その他"
            by_maker[maker].append(work)
        ranked = sorted(by_maker.items(), key=lambda kv: (-len(kv[1]), kv[0]))[:SUMMARY_MAKERS]

        day = _local_day(context)
        lines = [f"{maker}: {len(items)}作品 ({limit_text(items[0].title, 40)})" for maker, items in ranked]
        return [
            self._raw(
                slug=f"summary-{day:%Y%m%d}",
                title=f"{day.month}月{day.day}日の新着作品まとめ",
                summary=f"新着{len(works)}作品をメーカー別にまとめました。",
                lines=lines,
            )
        ]

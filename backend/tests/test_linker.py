from __future__ import annotations

from datetime import datetime, timezone

from app.schemas.article import Article, ArticleType
from ingestion.core.linker import PERFORMER_RELATED_LIMIT, link_topic, link_work, pick_related

from conftest import make_work


UTC = timezone.utc


def _topic(title: str, summary: str = "") -> Article:
    return Article(
        type=ArticleType.TOPIC,
        slug="topic-1",
        title=title,
        summary=summary or title,
        body="日付: 2026-10-18",
        source_url="internal://daily/topic-1",
        published_at=datetime(2026, 10, 18, tzinfo=UTC),
    )


def test_pick_related_never_includes_self_and_respects_limit():
    pool = [make_work(f"W-{i}", title=f"新人デビュー {i}") for i in range(10)]

    picked = pick_related(pool, ["newcomer"], 3, exclude="W-0")

    assert len(picked) == 3
    assert "W-0" not in picked


def test_pick_related_prefers_keyword_matches():
    pool = [
        make_work("W-1", title="ドラマ大作"),
        make_work("W-2", title="新人デビュー作"),
        make_work("W-3", title="人気シリーズ"),
    ]
    assert pick_related(pool, ["newcomer"], 6) == ["W-2"]


def test_pick_related_falls_back_to_pool_order():
    pool = [make_work("W-1"), make_work("W-2"), make_work("W-3")]
    assert pick_related(pool, [], 2) == ["W-1", "W-2"]
    assert pick_related(pool, ["cosplay"], 2) == ["W-1", "W-2"]


def test_link_topic_sets_relations_and_tag_digest(store):
    store.upsert_article(make_work("W-1", title="新人デビュー作", performers=("Alice",), minutes_ago=2))
    store.upsert_article(make_work("W-2", title="ベテラン作品", performers=("Bob",), minutes_ago=1))
    topic = _topic("今週の新人デビュー特集")

    tags = link_topic(topic, store)

    assert "newcomer" in tags
    assert topic.related_works == ["W-1"]
    assert topic.related_performers == ["alice"]
    assert "タグ解説:" in topic.body
    assert "- #新人:" in topic.body


def test_link_topic_with_empty_store_keeps_empty_relations(store):
    topic = _topic("unrelated text")
    assert link_topic(topic, store) == []
    assert topic.related_works == []
    assert topic.body == "日付: 2026-10-18"


def test_link_work_unions_performer_and_meta_matches(store):
    store.upsert_article(make_work("CO-1", performers=("Alice",), minutes_ago=5))
    store.upsert_article(make_work("CO-2", performers=("Alice", "Bob"), minutes_ago=4))
    store.upsert_article(make_work("META-1", maker="S1", minutes_ago=3))
    store.upsert_article(make_work("OTHER-1", maker="Moodyz", minutes_ago=2))
    work = make_work("NEW-1", performers=("Alice",), maker="S1")
    store.upsert_article(work)

    related = link_work(work, store)

    assert related[:2] == ["CO-2", "CO-1"]
    assert "META-1" in related
    assert "OTHER-1" not in related
    assert "NEW-1" not in related
    assert work.related_works == related


def test_link_work_caps_performer_matches(store):
    for i in range(6):
        store.upsert_article(make_work(f"A-{i}", performers=("Alice",), minutes_ago=i + 1))
        store.upsert_article(make_work(f"B-{i}", performers=("Bob",), minutes_ago=i + 1))
        store.upsert_article(make_work(f"C-{i}", performers=("Carol",), minutes_ago=i + 1))
    work = make_work("NEW-1", performers=("Alice", "Bob", "Carol"))

    related = link_work(work, store)

    assert len(related) == PERFORMER_RELATED_LIMIT
    assert len(set(related)) == len(related)

from __future__ import annotations

from ingestion.core.tagging import (
    append_tag_summary,
    extract_meta_tags,
    extract_tags,
    meta_values,
    ordered_tags,
    tag_keywords,
    tag_label,
    tag_summary,
)


def test_extract_tags_finds_vocabulary_keywords():
    tags = extract_tags("今月の新人デビュー作を4Kでチェック")
    assert "newcomer" in tags
    assert "highres" in tags


def test_extract_tags_unrelated_text_is_empty():
    assert extract_tags("unrelated text") == set()
    assert extract_tags("") == set()


def test_ordered_tags_follow_vocabulary_order():
    assert ordered_tags({"sale", "newcomer", "drama"}) == ["newcomer", "sale", "drama"]


def test_meta_tags_split_genre_line_into_separate_tags():
    body = "作品番号: ABC-001\nメーカー: S1\nジャンル: 単体作品 / ドラマ"
    assert extract_meta_tags(body) == ["maker:S1", "genre:単体作品", "genre:ドラマ"]
    assert meta_values(body) == (["S1"], ["単体作品", "ドラマ"])


def test_meta_tags_ignore_unlabelled_lines():
    assert extract_meta_tags("ジャンルの話\nno colon here") == []


def test_tag_label_and_summary():
    assert tag_label("newcomer") == "新人"
    assert tag_label("#sale") == "セール"
    assert tag_label("maker:S1") == "S1"
    assert tag_label("genre:%E3%83%89%E3%83%A9%E3%83%9E") == "ドラマ"
    assert tag_label("") == "タグ"
    assert tag_summary("unknown-tag") == "関連作品やトピックをまとめたタグです。"


def test_tag_keywords_for_meta_tags_are_the_value():
    assert tag_keywords("genre:ドラマ") == ["ドラマ"]
    assert "デビュー" in tag_keywords("newcomer")


def test_append_tag_summary_limits_to_two_tags():
    body = append_tag_summary("本文", ["newcomer", "sale", "drama"])
    assert body.startswith("本文\n\nタグ解説:\n")
    assert "- #新人:" in body
    assert "- #セール:" in body
    assert "ドラマ" not in body


def test_append_tag_summary_without_tags_is_identity():
    assert append_tag_summary("本文", []) == "本文"

from __future__ import annotations

"""Closed tag vocabulary and body meta-tag parsing.

- `extract_tags` maps free text onto TAG_MAP by substring match.
- `extract_meta_tags` reads the `メーカー:` / `ジャンル:` body lines written by
  the catalog normalizer and emits namespaced tags (`maker:X`, `genre:Y`).
"""

from urllib.parse import unquote


MAKER_LABEL = "メーカー"
GENRE_LABEL = "ジャンル"
MAKER_PREFIX = "maker:"
GENRE_PREFIX = "genre:"

TAG_MAP: dict[str, tuple[str, ...]] = {
    "newcomer": ("新人", "デビュー", "初登場", "初作品"),
    "exclusive": ("独占", "独占配信", "限定", "独占販売"),
    "highres": ("4K", "高画質", "HD", "FHD"),
    "sale": ("セール", "キャンペーン", "期間限定", "割引", "特価"),
    "ranking": ("ランキング", "人気", "上位", "注目"),
    "actress": ("女優", "注目女優", "新人女優", "人気女優"),
    "release": ("本日配信", "先行配信", "本日発売", "新作"),
    "drama": ("ドラマ", "ストーリー", "恋愛", "シナリオ"),
    "fetish": ("フェチ", "マニア", "こだわり"),
    "cosplay": ("コスプレ", "制服", "コスチューム"),
    "genre": ("ジャンル", "カテゴリ", "テーマ"),
    "compilation": ("総集編", "ベスト", "まとめ"),
    "feature": ("特集", "ピックアップ", "特別企画"),
    "event": ("イベント", "フェア", "キャンペーン"),
}

TAG_LABELS: dict[str, str] = {
    "newcomer": "新人",
    "exclusive": "独占",
    "highres": "高画質",
    "sale": "セール",
    "ranking": "ランキング",
    "actress": "女優",
    "release": "配信",
    "drama": "ドラマ",
    "fetish": "フェチ",
    "cosplay": "コスプレ",
    "genre": "ジャンル",
    "compilation": "総集編",
    "feature": "特集",
    "event": "イベント",
}

TAG_SUMMARIES: dict[str, str] = {
    "newcomer": "新人・デビュー作の動きが活発なタグです。",
    "exclusive": "独占配信・限定販売に関連する話題をまとめています。",
    "highres": "高画質・4K関連の注目作が集まるタグです。",
    "sale": "セールや期間限定のキャンペーン情報に関するタグです。",
    "ranking": "ランキング上位や話題作の動きを追跡しています。",
    "actress": "注目女優や話題の出演情報をまとめるタグです。",
    "release": "本日配信や新作リリースに関するタグです。",
    "drama": "ドラマ性の高い作品やストーリー重視の作品が集まります。",
    "fetish": "フェチ志向の作品やテーマ性の強い作品を集めています。",
    "cosplay": "コスプレや制服系の作品にフォーカスしたタグです。",
    "genre": "ジャンル別の動向をまとめるタグです。",
    "compilation": "総集編やベスト盤などまとめ作品が中心です。",
    "feature": "特集記事やピックアップ企画の動向をまとめています。",
    "event": "イベントやフェア、短期企画に関するタグです。",
}

DEFAULT_LABEL = "タグ"
DEFAULT_SUMMARY = "関連作品やトピックをまとめたタグです。"


def extract_tags(text: str) -> set[str]:
    if not text:
        return set()
    return {tag for tag, keywords in TAG_MAP.items() if any(k in text for k in keywords)}


def ordered_tags(tags: set[str]) -> list[str]:
    """Tags in vocabulary order, for stable output."""
    return [tag for tag in TAG_MAP if tag in tags]


def meta_values(body: str) -> tuple[list[str], list[str]]:
    """(makers, genres) found on the body's meta lines, in order of appearance."""
    makers: list[str] = []
    genres: list[str] = []
    for line in (body or "").splitlines():
        label, sep, value = line.partition(":")
        if not sep:
            continue
        label = label.strip()
        if label == MAKER_LABEL:
            maker = value.strip()
            if maker:
                makers.append(maker)
        elif label == GENRE_LABEL:
            genres.extend(g.strip() for g in value.split("/") if g.strip())
    return makers, genres


def extract_meta_tags(body: str) -> list[str]:
    makers, genres = meta_values(body)
    return [f"{MAKER_PREFIX}{m}" for m in makers] + [f"{GENRE_PREFIX}{g}" for g in genres]


def normalize_tag(tag: str) -> str:
    if not tag:
        return ""
    value = unquote(tag.strip())
    if value.startswith("#"):
        value = value[1:]
    return value.strip()


def tag_label(tag: str) -> str:
    normalized = normalize_tag(tag)
    if not normalized:
        return DEFAULT_LABEL
    for prefix in (MAKER_PREFIX, GENRE_PREFIX):
        if normalized.startswith(prefix):
            return normalized[len(prefix):]
    return TAG_LABELS.get(normalized, normalized)


def tag_summary(tag: str) -> str:
    return TAG_SUMMARIES.get(normalize_tag(tag), DEFAULT_SUMMARY)


def tag_keywords(tag: str) -> list[str]:
    normalized = normalize_tag(tag)
    if not normalized:
        return []
    for prefix in (MAKER_PREFIX, GENRE_PREFIX):
        if normalized.startswith(prefix):
            return [normalized[len(prefix):]]
    return list(TAG_MAP.get(normalized, ()))


def append_tag_summary(body: str, tags: list[str], *, limit: int = 2) -> str:
    if not tags:
        return body
    lines = [f"- #{tag_label(tag)}: {tag_summary(tag)}" for tag in tags[:limit]]
    return f"{body}\n\nタグ解説:\n" + "\n".join(lines)

from __future__ import annotations

"""Print the most recently published articles as JSON (read-only)."""

import argparse
import json
import sys
from pathlib import Path

# Ensure `backend/` is on sys.path when run from repo root
BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from app.core.db import make_session_factory  # noqa: E402
from app.schemas.article import ArticleType  # noqa: E402
from ingestion.core.store import SqlArticleStore  # noqa: E402


def main(article_type: str = "work", limit: int = 10) -> None:
    store = SqlArticleStore(make_session_factory())
    items = store.get_latest_by_type(ArticleType(article_type), limit)
    out = [
        {
            "slug": it.slug,
            "type": it.type.value,
            "title": it.title,
            "source_url": it.source_url,
            "related_works": it.related_works,
            "related_performers": it.related_performers,
            "published_at": it.published_at.isoformat(),
        }
        for it in items
    ]
    print(json.dumps(out, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--type", default="work", choices=[t.value for t in ArticleType])
    p.add_argument("--limit", type=int, default=10)
    args = p.parse_args()
    main(article_type=args.type, limit=args.limit)

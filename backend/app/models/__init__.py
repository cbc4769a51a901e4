"""SQLAlchemy models package.

All ORM classes are imported here so Base.metadata is complete regardless of
import order (Alembic and tests rely on it).
"""

from app.models import article, stats  # noqa: F401
from app.models.article import StoredArticle
from app.models.stats import GenreStat, MakerStat, PerformerStat

__all__ = ["StoredArticle", "PerformerStat", "GenreStat", "MakerStat"]

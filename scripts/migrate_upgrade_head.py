"""Apply article-store migrations (upgrade only; never downgrades).

Usage:
  python scripts/migrate_upgrade_head.py [--revision head] [--sql]

Reads DATABASE_URL from the environment or from `.env.local` / `.env` /
`backend/.env` via app.core.env.load_env_if_present().
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config


ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.core.env import load_env_if_present  # noqa: E402


def alembic_config(url: str) -> Config:
    cfg = Config(str(BACKEND_DIR / "alembic.ini"))
    cfg.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--revision", default="head")
    parser.add_argument("--sql", action="store_true", help="print SQL instead of executing it")
    args = parser.parse_args(argv)

    load_env_if_present()
    url = os.environ.get("DATABASE_URL")
    if not url:
        print("Missing DATABASE_URL (set env var or create .env.local).")
        return 2

    print(f"Upgrading article store to {args.revision}…")
    command.upgrade(alembic_config(url), args.revision, sql=args.sql)
    print("PASS: upgraded.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

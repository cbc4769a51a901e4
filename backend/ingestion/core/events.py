from __future__ import annotations

"""Structured logging helpers.

One JSON object per line. Events carry identifiers and counts, never raw
page bodies or credentials.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


UTC = timezone.utc
LOG_DIR_ENV = "INGEST_LOG_DIR"


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))


def configure_logging(level: int = logging.INFO, *, log_dir: str | Path | None = None) -> Path | None:
    """Console logging plus a daily `ingest-YYYY-MM-DD.log` file.

    Returns the log file path, or None when the directory cannot be created.
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("avinfo").setLevel(level)

    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or Path.cwd() / "logs")
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError:
        return None

    path = directory / f"ingest-{datetime.now(tz=UTC):%Y-%m-%d}.log"
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and Path(handler.baseFilename) == path.resolve():
            return path

    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(message)s"))
    root.addHandler(file_handler)
    return path

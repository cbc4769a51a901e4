from __future__ import annotations

import json
import logging

from ingestion.core.events import configure_logging, log_event


def test_log_event_emits_one_json_object(caplog):
    logger = logging.getLogger("avinfo.ingestion.test")
    with caplog.at_level(logging.INFO, logger="avinfo.ingestion.test"):
        log_event(logger, "article_upserted", slug="ABC-001", status="created")

    (record,) = caplog.records
    assert json.loads(record.getMessage()) == {"event": "article_upserted", "slug": "ABC-001", "status": "created"}


def test_configure_logging_adds_one_daily_file_handler(tmp_path):
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        path = configure_logging(log_dir=tmp_path)
        again = configure_logging(log_dir=tmp_path)

        assert path == again
        assert path.parent == tmp_path
        assert path.name.startswith("ingest-") and path.suffix == ".log"
        file_handlers = [h for h in root.handlers if isinstance(h, logging.FileHandler) and h not in before]
        assert len(file_handlers) == 1

        log_event(logging.getLogger("avinfo.ingestion.test"), "hello", n=1)
        file_handlers[0].flush()
        assert '"event": "hello"' in path.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()

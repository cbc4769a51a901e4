from __future__ import annotations

import asyncio
import json

import httpx

from ingestion.core.errors import RemoteApiError
from ingestion.core.notify import (
    build_summary_message,
    outcome_failed,
    outcome_ok,
    send_notification,
)


def _send(handler, url: str, message: str) -> bool:
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await send_notification(client, url, message)

    return asyncio.run(run())


def test_posts_json_text_once():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    assert _send(handler, "https://hooks.example.test/ingest", "line 1\nline 2") is True
    assert bodies == [{"text": "line 1\nline 2"}]


def test_no_url_is_a_noop():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert _send(handler, "", "message") is False


def test_delivery_failures_are_not_raised():
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def rejected(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    assert _send(refused, "https://hooks.example.test/ingest", "message") is False
    assert _send(rejected, "https://hooks.example.test/ingest", "message") is False


def test_summary_message_layout():
    outcomes = [
        outcome_ok("gsheet", {"fetched": 2, "upserted": 2}),
        outcome_failed("catalog", RuntimeError("HTTP 503")),
    ]

    message = build_summary_message("Ingest finished with partial failures", outcomes, 12.4)

    assert message.splitlines() == [
        "Ingest finished with partial failures",
        "Duration: 12s | Success: 1/2",
        'gsheet: ok {"fetched": 2, "upserted": 2}',
        "catalog: failed RuntimeError: HTTP 503",
    ]


def test_multiline_error_detail_stays_on_one_line():
    error = RemoteApiError("HTTP 503 from catalog: <html>\n<body>\n  boom\n</body>", status_code=503)
    outcomes = [
        outcome_ok("gsheet", {"fetched": 1}),
        outcome_failed("catalog", error),
        outcome_failed("rss", RuntimeError("x")),
    ]

    lines = build_summary_message("Ingest finished with partial failures", outcomes, 3.0).splitlines()

    assert len(lines) == 5
    assert lines[3] == "catalog: failed RemoteApiError: HTTP 503 from catalog: <html> <body> boom </body>"
    assert lines[4] == "rss: failed RuntimeError: x"

from __future__ import annotations

"""Fire-and-forget run notifications.

One POST of `{"text": message}` to the configured webhook. Delivery failures
are logged and never retried or raised.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from ingestion.core.events import log_event


logger = logging.getLogger("avinfo.ingestion.notify")

NOTIFY_TIMEOUT_SECONDS = 10.0


@dataclass(frozen=True, slots=True)
class SourceOutcome:
    name: str
    ok: bool
    detail: str

    def line(self) -> str:
        return f"{self.name}: {'ok' if self.ok else 'failed'} {self.detail}"


def outcome_ok(name: str, report: dict) -> SourceOutcome:
    return SourceOutcome(name=name, ok=True, detail=json.dumps(report, ensure_ascii=False, sort_keys=True))


def outcome_failed(name: str, error: BaseException) -> SourceOutcome:
    # Error text can carry response bodies; the detail must stay on one line.
    reason = " ".join(str(error).split())
    return SourceOutcome(name=name, ok=False, detail=f"{type(error).__name__}: {reason}")


def build_summary_message(headline: str, outcomes: Sequence[SourceOutcome], duration_seconds: float) -> str:
    succeeded = sum(1 for o in outcomes if o.ok)
    lines = [
        headline,
        f"Duration: {round(duration_seconds)}s | Success: {succeeded}/{len(outcomes)}",
        *(o.line() for o in outcomes),
    ]
    return "\n".join(lines)


async def send_notification(
    client: Optional[httpx.AsyncClient],
    url: str,
    message: str,
) -> bool:
    """POST the message once. Returns True when the sink answered 2xx."""
    if not url:
        return False

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=NOTIFY_TIMEOUT_SECONDS) as own:
                response = await own.post(url, json={"text": message})
        else:
            response = await client.post(url, json={"text": message}, timeout=NOTIFY_TIMEOUT_SECONDS)
    except httpx.HTTPError as exc:
        log_event(logger, "notification_failed", level=logging.WARNING, error=repr(exc))
        return False

    if not response.is_success:
        log_event(logger, "notification_failed", level=logging.WARNING, status_code=response.status_code)
        return False
    log_event(logger, "notification_sent", lines=message.count("\n") + 1)
    return True

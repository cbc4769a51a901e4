from __future__ import annotations

"""Ingestion entry point: run every source pipeline, then refresh site stats.

STRICT:
- Source pipelines run concurrently and settle independently; one failing
  source never cancels another.
- Zero successful sources is a failed run (notify, exit 1).
- Some failures is a partial run (notify, refresh stats, exit 0).
- Stats refresh failures are logged only.

Run:
  python ingestion/jobs/run_ingestion.py [--mode normal|archive] [--archive]
"""

import argparse
import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Sequence

# Ensure `backend/` is on sys.path so `import app...` works when run from repo root.
BASE_DIR = Path(__file__).resolve().parents[2]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from app.core.db import make_session_factory  # noqa: E402
from app.core.env import load_env_if_present  # noqa: E402
from ingestion.adapters import (  # noqa: E402
    CatalogAdapter,
    DailyTopicAdapter,
    RankingAdapter,
    RssAdapter,
    SheetAdapter,
    SummaryAdapter,
)
from ingestion.core.adapter import BaseAdapter  # noqa: E402
from ingestion.core.errors import ConfigurationError  # noqa: E402
from ingestion.core.events import configure_logging, log_event  # noqa: E402
from ingestion.core.fetch_context import FetchContext  # noqa: E402
from ingestion.core.ingestion_controller import IngestionController, SourceReport  # noqa: E402
from ingestion.core.network_client import RetryingClient  # noqa: E402
from ingestion.core.notify import (  # noqa: E402
    SourceOutcome,
    build_summary_message,
    outcome_failed,
    outcome_ok,
    send_notification,
)
from ingestion.core.settings import IngestSettings  # noqa: E402
from ingestion.core.store import ArticleStore, SqlArticleStore  # noqa: E402


logger = logging.getLogger("avinfo.ingestion.run")

ALL_FAILED_HEADLINE = "Ingest finished: no successful fetchers"
PARTIAL_HEADLINE = "Ingest finished with partial failures"

Notifier = Callable[[str], Awaitable[Any]]


class RunMode(str, Enum):
    NORMAL = "normal"
    ARCHIVE = "archive"


class RunStatus(str, Enum):
    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL_FAILURE = "partial_failure"
    ALL_FAILED = "all_failed"


@dataclass(frozen=True)
class SourceTask:
    name: str
    run: Callable[[], Awaitable[SourceReport]]


@dataclass(frozen=True)
class RefreshOperation:
    name: str
    run: Callable[[], None]


@dataclass
class RunResult:
    status: RunStatus
    outcomes: list[SourceOutcome]
    exit_code: int
    refreshed_with: Optional[str] = None
    refresh_attempted: bool = False
    notification: Optional[str] = None
    duration_seconds: float = 0.0


def classify(outcomes: Sequence[SourceOutcome]) -> RunStatus:
    succeeded = sum(1 for o in outcomes if o.ok)
    if succeeded == 0:
        return RunStatus.ALL_FAILED
    if succeeded < len(outcomes):
        return RunStatus.PARTIAL_FAILURE
    return RunStatus.ALL_SUCCEEDED


async def settle(tasks: Sequence[SourceTask]) -> list[SourceOutcome]:
    """Run every task concurrently; collect each outcome without cancelling siblings."""
    results = await asyncio.gather(*(task.run() for task in tasks), return_exceptions=True)
    outcomes: list[SourceOutcome] = []
    for task, result in zip(tasks, results):
        if isinstance(result, BaseException):
            log_event(logger, "source_failed", level=logging.ERROR, source_key=task.name, error=repr(result))
            outcomes.append(outcome_failed(task.name, result))
        else:
            report = result.as_dict() if isinstance(result, SourceReport) else dict(result or {})
            log_event(logger, "source_completed", source_key=task.name, **report)
            outcomes.append(outcome_ok(task.name, report))
    return outcomes


def refresh_stats(operations: Sequence[RefreshOperation]) -> Optional[str]:
    """Try each refresh in order; the first success wins. Never raises."""
    for operation in operations:
        try:
            operation.run()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "stats_refresh_failed", level=logging.WARNING, operation=operation.name, error=repr(exc))
            continue
        log_event(logger, "stats_refresh_done", operation=operation.name)
        return operation.name
    log_event(logger, "stats_refresh_gave_up", level=logging.ERROR, attempted=[o.name for o in operations])
    return None


async def run_tasks(
    tasks: Sequence[SourceTask],
    *,
    notify: Notifier,
    refresh_operations: Sequence[RefreshOperation] = (),
    refresh_enabled: bool = True,
    clock: Callable[[], float] = time.monotonic,
) -> RunResult:
    started = clock()
    outcomes = await settle(tasks)
    status = classify(outcomes)
    duration = clock() - started
    result = RunResult(status=status, outcomes=outcomes, exit_code=0, duration_seconds=duration)

    if status is RunStatus.ALL_FAILED:
        result.exit_code = 1
        result.notification = build_summary_message(ALL_FAILED_HEADLINE, outcomes, duration)
        log_event(logger, "ingestion_run_failed", level=logging.ERROR, sources=len(outcomes))
        await notify(result.notification)
        return result

    if status is RunStatus.PARTIAL_FAILURE:
        result.notification = build_summary_message(PARTIAL_HEADLINE, outcomes, duration)
        await notify(result.notification)
        log_event(
            logger,
            "ingestion_run_partial",
            level=logging.WARNING,
            succeeded=sum(1 for o in outcomes if o.ok),
            sources=len(outcomes),
        )

    if refresh_enabled and refresh_operations:
        result.refresh_attempted = True
        result.refreshed_with = refresh_stats(refresh_operations)

    if status is RunStatus.ALL_SUCCEEDED:
        log_event(logger, "ingestion_run_succeeded", sources=len(outcomes), duration_seconds=round(duration, 1))
    return result


def build_adapters(settings: IngestSettings, mode: RunMode) -> list[BaseAdapter]:
    if mode is RunMode.ARCHIVE:
        return [CatalogAdapter(settings)]
    return [
        SheetAdapter(settings),
        SummaryAdapter(settings),
        DailyTopicAdapter(settings),
        RankingAdapter(settings),
        RssAdapter(settings),
        CatalogAdapter(settings),
    ]


def build_tasks(adapters: Sequence[BaseAdapter], context: FetchContext) -> list[SourceTask]:
    return [SourceTask(name=a.source_key, run=IngestionController(a, context).run) for a in adapters]


def refresh_operations_for(store: ArticleStore) -> list[RefreshOperation]:
    return [
        RefreshOperation("site_stats", store.refresh_site_stats),
        RefreshOperation("performer_stats", store.refresh_performer_stats),
    ]


async def run_ingestion(
    settings: IngestSettings,
    *,
    mode: RunMode = RunMode.NORMAL,
    store: Optional[ArticleStore] = None,
    client: Optional[RetryingClient] = None,
    adapters: Optional[Sequence[BaseAdapter]] = None,
    notify: Optional[Notifier] = None,
) -> RunResult:
    own_client = client is None
    client = client or RetryingClient(settings.retry_policy(), user_agent=settings.user_agent)

    async def _notify(message: str) -> Any:
        return await send_notification(client.http, settings.notify_webhook_url, message)

    notify = notify or _notify
    archive = mode is RunMode.ARCHIVE
    log_event(logger, "ingestion_run_started", mode=mode.value)

    try:
        if archive:
            paging = settings.catalog_paging(archive=True)
            log_event(
                logger,
                "archive_mode",
                offset=paging.offset_start,
                pages=paging.max_pages,
                target=paging.target_new,
            )

        store = store or SqlArticleStore(make_session_factory())
        known_slugs = await asyncio.to_thread(store.get_work_slugs, settings.known_slug_limit)
        context = FetchContext(
            settings=settings,
            client=client,
            store=store,
            known_slugs=known_slugs,
            archive=archive,
        )
        tasks = build_tasks(adapters if adapters is not None else build_adapters(settings, mode), context)
        return await run_tasks(
            tasks,
            notify=notify,
            refresh_operations=refresh_operations_for(store),
            refresh_enabled=settings.refresh_stats,
        )
    except Exception as exc:  # noqa: BLE001
        message = f"Fatal error: {exc!r}"
        log_event(logger, "ingestion_run_fatal", level=logging.ERROR, error=repr(exc))
        await notify(message)
        return RunResult(status=RunStatus.ALL_FAILED, outcomes=[], exit_code=1, notification=message)
    finally:
        if own_client:
            await client.close()


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch, normalize and store articles from every source.")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in RunMode],
        default=RunMode.NORMAL.value,
        help="normal runs every source; archive runs only the catalog with archive paging",
    )
    parser.add_argument("--archive", action="store_true", help="shortcut for --mode archive")
    parser.add_argument("--log-dir", default=None, help="directory for daily log files (default: ./logs)")
    parser.add_argument("--verbose", action="store_true", help="log debug events")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    load_env_if_present()
    log_path = configure_logging(logging.DEBUG if args.verbose else logging.INFO, log_dir=args.log_dir)
    if log_path is not None:
        log_event(logger, "log_file", path=str(log_path))

    try:
        settings = IngestSettings.from_env()
    except ConfigurationError as exc:
        log_event(logger, "ingestion_config_invalid", level=logging.ERROR, error=str(exc))
        return 1

    mode = RunMode.ARCHIVE if args.archive else RunMode(args.mode)
    result = asyncio.run(run_ingestion(settings, mode=mode))
    log_event(
        logger,
        "ingestion_run_summary",
        status=result.status.value,
        exit_code=result.exit_code,
        refreshed_with=result.refreshed_with,
        outcomes=[o.line() for o in result.outcomes],
    )
    return result.exit_code


if __name__ == "__main__":
    raise SystemExit(main())

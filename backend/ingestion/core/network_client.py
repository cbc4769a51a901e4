"""RetryingClient: the only gateway for outbound HTTP during ingestion.

Design principles:
- Every attempt is individually timeout-bounded; a timeout cancels the call and
  counts as one failed attempt.
- Bounded retries with a backoff that grows linearly with the retry index.
- After the last attempt the last error surfaces as FetchError / RemoteApiError.
- Whether a non-2xx status is worth retrying is the caller's decision.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_incrementing

from ingestion.core.errors import FetchError, RemoteApiError
from ingestion.core.events import log_event
from ingestion.core.miss import is_miss_response
from ingestion.core.settings import RetryPolicy


logger = logging.getLogger("avinfo.ingestion.http")

StatusPredicate = Callable[[int], bool]


def default_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class RetryingClient:
    """Async HTTP client with per-attempt timeouts and bounded retries."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        user_agent: str = "av-info-ingest/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    @property
    def http(self) -> httpx.AsyncClient:
        """Underlying client, for one-shot calls that must not be retried."""
        return self._client

    async def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        policy: Optional[RetryPolicy] = None,
        retry_on_status: Optional[StatusPredicate] = None,
    ) -> httpx.Response:
        """Execute a request, retrying transient failures.

        Returns the response of the first attempt that is not retryable (which may
        still be a non-2xx the caller has to judge).

        Raises:
            FetchError: every attempt failed with a timeout or transport error.
            RemoteApiError: every attempt answered with a retryable status.
        """
        policy = policy or self._policy
        retryable = retry_on_status or default_retryable_status
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.retries + 1),
            wait=wait_incrementing(start=policy.backoff_seconds, increment=policy.backoff_seconds),
            retry=retry_if_exception_type((httpx.TransportError, asyncio.TimeoutError, _RetryableStatus)),
            sleep=self._sleep,
            before_sleep=lambda state: log_event(
                logger,
                "http_retry",
                level=logging.WARNING,
                url=url,
                attempt=state.attempt_number,
                error=repr(state.outcome.exception()) if state.outcome else None,
            ),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    response = await asyncio.wait_for(
                        self._client.request(
                            method,
                            url,
                            params=params,
                            headers=headers,
                            json=json,
                            timeout=policy.timeout_seconds,
                        ),
                        timeout=policy.timeout_seconds,
                    )
                    if retryable(response.status_code):
                        raise _RetryableStatus(response)
        except _RetryableStatus as exc:
            status = exc.response.status_code
            raise RemoteApiError(
                f"HTTP {status} from {url} after {attempts} attempt(s)",
                status_code=status,
                url=url,
                attempts=attempts,
            ) from exc
        except (httpx.TransportError, asyncio.TimeoutError) as exc:
            raise FetchError(
                f"{type(exc).__name__} for {url} after {attempts} attempt(s)",
                url=url,
                attempts=attempts,
            ) from exc
        except RetryError as exc:  # pragma: no cover - reraise=True surfaces the cause instead
            raise FetchError(f"Retries exhausted for {url}", url=url, attempts=attempts) from exc

        return response

    async def exists(self, url: str, *, method: str = "HEAD") -> bool:
        """Live existence check used by thumbnail and embed validation.

        Placeholder redirects and soft-404 bodies count as "does not exist".
        An unreachable URL also counts as a miss; the item is kept without it.
        """
        try:
            response = await self.fetch(url, method=method)
            if method == "HEAD" and response.status_code == 405:
                response = await self.fetch(url, method="GET")
        except FetchError as exc:
            log_event(logger, "http_exists_unreachable", level=logging.WARNING, url=url, error=str(exc))
            return False
        return not is_miss_response(response)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "RetryingClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

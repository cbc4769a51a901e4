from __future__ import annotations

"""Controlled ingestion errors.

- Errors raised below the per-source boundary are isolated by the orchestrator;
  none of them aborts a sibling source pipeline.
- Validation rejections are NOT errors: normalizers return None and the
  pipeline counts a skip.
"""


class IngestionError(RuntimeError):
    """Base error for ingestion."""


class ConfigurationError(IngestionError):
    """Raised when a required setting is malformed (missing credentials skip instead)."""


class FetchError(IngestionError):
    """Raised when a remote call fails after exhausting retries (timeout, transport)."""

    def __init__(self, message: str, *, url: str | None = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts


class RemoteApiError(FetchError):
    """Raised when a remote API keeps answering with a non-success status."""

    def __init__(self, message: str, *, status_code: int, url: str | None = None, attempts: int = 0) -> None:
        super().__init__(message, url=url, attempts=attempts)
        self.status_code = status_code


class PersistenceError(IngestionError):
    """Raised when an upsert cannot converge to a single row."""

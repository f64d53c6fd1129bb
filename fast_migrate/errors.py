"""Error taxonomy shared by connectors, executor, ledger and engine.

The configuration and authentication errors come from identity_common and
are re-exported here so callers import every error from one place.
"""
from __future__ import annotations

from typing import Optional

from identity_common.errors import AuthenticationFailure, ConfigError, MigrationError, SourceUnavailable

__all__ = [
    "MigrationError",
    "ConfigError",
    "AuthenticationFailure",
    "SourceUnavailable",
    "ApiError",
    "TransientApiError",
    "RateLimitedError",
    "ValidationError",
    "NotFoundError",
    "EntityFailed",
    "DependencyFailed",
    "LedgerError",
    "ExecutorClosed",
    "describe",
]


class ApiError(MigrationError):
    """An HTTP call returned an error status."""

    def __init__(self, status: Optional[int], body: str = "", url: str = ""):
        self.status = status
        self.body = body
        self.url = url
        detail = body[:300] if body else ""
        super().__init__(f"Request failed with status code {status}: {detail}".rstrip(": "))


class TransientApiError(ApiError):
    """Retryable: server errors, connection errors, timeouts."""

    def __init__(self, status: Optional[int], body: str = "", url: str = "",
                 retry_after: Optional[float] = None):
        super().__init__(status, body, url)
        self.retry_after = retry_after


class RateLimitedError(TransientApiError):
    """HTTP 429."""


class ValidationError(ApiError):
    """The request was rejected as invalid. Never retried."""


class NotFoundError(ApiError):
    """HTTP 404. Never retried."""


class EntityFailed(MigrationError):
    """A task exhausted its retries; the caller records the entity as failed."""

    def __init__(self, reason: str, attempts: int = 0):
        super().__init__(reason)
        self.reason = reason
        self.attempts = attempts


class DependencyFailed(MigrationError):
    """An assignment references a group, user or tile that was not created."""


class LedgerError(MigrationError):
    """Illegal ledger state transition or unreadable ledger."""


class ExecutorClosed(MigrationError):
    """Work was submitted after the executor was shut down."""


def describe(exc: BaseException) -> str:
    """Short, stable failure reason for ledger entries and the summary."""
    if isinstance(exc, EntityFailed):
        return exc.reason
    name = type(exc).__name__
    message = str(exc)
    return f"{name}: {message}" if message else name

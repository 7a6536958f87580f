"""Exception types and error classification for dashboard data sources."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional


class DashboardError(RuntimeError):
    """Base class for dashboard errors."""


class UnknownMetricError(DashboardError, ValueError):
    """Raised when a caller names a metric that does not exist."""

    def __init__(self, metric: object) -> None:
        super().__init__(f"Unknown metric: {metric!r}")
        self.metric = metric


class AggregatorClosedError(DashboardError):
    """Raised when a closed aggregator is asked to refresh."""


class SourceError(DashboardError):
    """A data source failed to produce a usable payload."""

    kind = "unknown"

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        kind: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if kind is not None:
            self.kind = kind


class UpstreamError(SourceError):
    """The backend answered with an error status or a failed envelope."""

    kind = "upstream"


class MalformedPayloadError(SourceError):
    """The backend answered with a shape the normalizer cannot use."""

    kind = "malformed"


@dataclass(frozen=True)
class ErrorInfo:
    kind: str
    message: str
    retryable: bool
    status_code: Optional[int] = None


def generic_message(metric: str) -> str:
    return f"Failed to refresh {metric} data"


def _kind_for_status(status: int) -> tuple[str, bool]:
    if status in (401, 403):
        return "auth", False
    if status >= 500:
        return "server", True
    if status == 404:
        return "not_found", False
    if 400 <= status < 500:
        return "client", False
    return "unknown", True


def classify_error(exc: BaseException, metric: str) -> ErrorInfo:
    """Map a data-source failure to a kind, a display message and a retry hint.

    The upstream message is preferred; when the failure carries none, the
    generic "Failed to refresh <metric> data" text is used.
    """

    status = getattr(exc, "status_code", None)
    message = (getattr(exc, "message", None) or str(exc) or "").strip()
    if isinstance(exc, SourceError) and exc.kind == "network":
        kind, retryable = "network", True
    elif isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        kind, retryable = "network", True
    elif isinstance(exc, MalformedPayloadError):
        kind, retryable = "malformed", True
    elif isinstance(status, int):
        kind, retryable = _kind_for_status(status)
    else:
        kind, retryable = "unknown", True
    return ErrorInfo(
        kind=kind,
        message=message or generic_message(metric),
        retryable=retryable,
        status_code=status if isinstance(status, int) else None,
    )


__all__ = [
    "DashboardError",
    "UnknownMetricError",
    "AggregatorClosedError",
    "SourceError",
    "UpstreamError",
    "MalformedPayloadError",
    "ErrorInfo",
    "classify_error",
    "generic_message",
]

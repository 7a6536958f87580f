"""Data source contract consumed by the dashboard aggregator."""

from __future__ import annotations

import inspect
from typing import Any, Mapping, MutableMapping, Protocol

from .models import MetricKey

DEFAULT_RESOURCES: Mapping[MetricKey, str] = {
    MetricKey.STATS: "/admin-dashboard/stats",
    MetricKey.CUSTOMERS: "/customers",
    MetricKey.ORDERS: "/orders",
    MetricKey.ASSISTANTS: "/assistants",
    MetricKey.REVENUE: "/reports/revenue",
    MetricKey.PERFORMANCE: "/reports/performance",
}


class DataSource(Protocol):
    """Pluggable remote data provider.

    ``fetch`` returns the decoded JSON body for ``resource`` and raises on
    transport or HTTP failures.
    """

    async def fetch(self, resource: str, params: Mapping[str, Any] | None = None) -> Any:
        ...


class InMemorySource:
    """Source serving canned payloads or callables; used by tests and demos.

    A value may be a payload, an exception instance (raised on fetch) or a
    callable taking the request params and returning a payload or awaitable.
    """

    def __init__(self, responses: Mapping[str, Any] | None = None) -> None:
        self._responses: MutableMapping[str, Any] = dict(responses or {})
        self.calls: list[str] = []

    def set(self, resource: str, response: Any) -> None:
        self._responses[resource] = response

    async def fetch(self, resource: str, params: Mapping[str, Any] | None = None) -> Any:
        self.calls.append(resource)
        if resource not in self._responses:
            raise LookupError(f"No response registered for {resource}")
        response = self._responses[resource]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(params)
            if inspect.isawaitable(response):
                response = await response
        return response


__all__ = ["DEFAULT_RESOURCES", "DataSource", "InMemorySource"]

"""Core package for the commerce portal dashboard aggregator."""

from .aggregator import DashboardAggregator, resolve_metric
from .errors import (
    AggregatorClosedError,
    DashboardError,
    MalformedPayloadError,
    SourceError,
    UnknownMetricError,
    UpstreamError,
)
from .models import (
    FULL_REFRESH_METRICS,
    REPORT_METRICS,
    AssistantStats,
    Customer,
    DashboardSnapshot,
    DashboardStats,
    MetricKey,
    MetricRefreshResult,
    MetricState,
    Order,
    OrderStatus,
    RefreshOutcome,
)
from .normalize import UpstreamOrder, normalize_customer, normalize_order
from .sources import DEFAULT_RESOURCES, DataSource, InMemorySource

__all__ = [
    "DashboardAggregator",
    "resolve_metric",
    "AggregatorClosedError",
    "DashboardError",
    "MalformedPayloadError",
    "SourceError",
    "UnknownMetricError",
    "UpstreamError",
    "FULL_REFRESH_METRICS",
    "REPORT_METRICS",
    "AssistantStats",
    "Customer",
    "DashboardSnapshot",
    "DashboardStats",
    "MetricKey",
    "MetricRefreshResult",
    "MetricState",
    "Order",
    "OrderStatus",
    "RefreshOutcome",
    "UpstreamOrder",
    "normalize_customer",
    "normalize_order",
    "DEFAULT_RESOURCES",
    "DataSource",
    "InMemorySource",
]

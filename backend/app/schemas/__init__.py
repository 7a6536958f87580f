"""Pydantic schema exports."""

from .dashboard import (
    AssistantPerformanceSchema,
    AssistantStatsSchema,
    CustomerSchema,
    DashboardSnapshotSchema,
    DashboardStatsSchema,
    MetricRefreshSchema,
    MetricStateSchema,
    OrderSchema,
    OrderSummarySchema,
    RefreshOutcomeSchema,
    RevenueReportSchema,
)

__all__ = [
    "DashboardSnapshotSchema",
    "DashboardStatsSchema",
    "OrderSchema",
    "CustomerSchema",
    "RevenueReportSchema",
    "AssistantPerformanceSchema",
    "AssistantStatsSchema",
    "MetricStateSchema",
    "OrderSummarySchema",
    "RefreshOutcomeSchema",
    "MetricRefreshSchema",
]

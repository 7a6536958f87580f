"""Pydantic schemas for the dashboard API."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from portal_dashboard.models import (
    Customer,
    DashboardSnapshot,
    MetricRefreshResult,
    MetricState,
    Order,
    RefreshOutcome,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DashboardStatsSchema(CamelModel):
    total_customers: float = 0
    total_orders: float = 0
    total_assistants: float = 0
    active_chats: float = 0
    monthly_revenue: float = 0
    today_orders: float = 0
    response_rate: float = 0
    active_customers: float = 0
    new_customers: float = 0


class OrderSchema(CamelModel):
    id: str
    customer_id: str
    customer_name: str
    item: str
    amount: float
    status: str
    created_at: datetime

    @classmethod
    def from_order(cls, order: Order) -> "OrderSchema":
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            item=order.item,
            amount=order.amount,
            status=order.status.value,
            created_at=order.created_at,
        )


class CustomerSchema(CamelModel):
    id: str
    name: str
    phone: str
    last_order: datetime
    total_orders: int
    total_spent: float

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerSchema":
        return cls(
            id=customer.id,
            name=customer.name,
            phone=customer.phone,
            last_order=customer.last_order,
            total_orders=customer.total_orders,
            total_spent=customer.total_spent,
        )


class RevenuePointSchema(CamelModel):
    label: str
    amount: float


class RevenueReportSchema(CamelModel):
    total: float = 0.0
    points: list[RevenuePointSchema] = Field(default_factory=list)


class AssistantStatsSchema(CamelModel):
    total: int = 0
    active: int = 0
    inactive: int = 0


class AssistantPerformanceSchema(CamelModel):
    assistant_id: str
    name: str
    orders_handled: int
    response_rate: float
    revenue: float


class MetricStateSchema(CamelModel):
    loading: bool = False
    error: str | None = None
    error_kind: str | None = None
    retryable: bool = False
    updated_at: datetime

    @classmethod
    def from_state(cls, state: MetricState) -> "MetricStateSchema":
        return cls(
            loading=state.loading,
            error=state.error,
            error_kind=state.error_kind,
            retryable=state.retryable,
            updated_at=state.updated_at,
        )


class OrderSummarySchema(CamelModel):
    total: int
    by_status: dict[str, int]
    total_value: float
    average_value: float


class DashboardSnapshotSchema(CamelModel):
    stats: DashboardStatsSchema
    recent_orders: list[OrderSchema]
    recent_customers: list[CustomerSchema]
    revenue: RevenueReportSchema
    performance: list[AssistantPerformanceSchema]
    assistant_stats: AssistantStatsSchema = Field(default_factory=AssistantStatsSchema)
    order_summary: OrderSummarySchema
    metrics: dict[str, MetricStateSchema]
    last_updated: datetime
    is_stale: bool
    notice: str = ""

    @classmethod
    def from_snapshot(
        cls,
        snapshot: DashboardSnapshot,
        *,
        stale_after: timedelta = timedelta(minutes=10),
    ) -> "DashboardSnapshotSchema":
        summary = snapshot.order_summary()
        stats = snapshot.stats
        return cls(
            stats=DashboardStatsSchema(
                total_customers=stats.total_customers,
                total_orders=stats.total_orders,
                total_assistants=stats.total_assistants,
                active_chats=stats.active_chats,
                monthly_revenue=stats.monthly_revenue,
                today_orders=stats.today_orders,
                response_rate=stats.response_rate,
                active_customers=stats.active_customers,
                new_customers=stats.new_customers,
            ),
            recent_orders=[OrderSchema.from_order(order) for order in snapshot.recent_orders],
            recent_customers=[CustomerSchema.from_customer(c) for c in snapshot.recent_customers],
            revenue=RevenueReportSchema(
                total=snapshot.revenue.total,
                points=[RevenuePointSchema(label=p.label, amount=p.amount) for p in snapshot.revenue.points],
            ),
            performance=[
                AssistantPerformanceSchema(
                    assistant_id=row.assistant_id,
                    name=row.name,
                    orders_handled=row.orders_handled,
                    response_rate=row.response_rate,
                    revenue=row.revenue,
                )
                for row in snapshot.performance
            ],
            assistant_stats=AssistantStatsSchema(
                total=snapshot.assistant_stats.total,
                active=snapshot.assistant_stats.active,
                inactive=snapshot.assistant_stats.inactive,
            ),
            order_summary=OrderSummarySchema(
                total=summary.total,
                by_status={status.value: count for status, count in summary.by_status.items()},
                total_value=summary.total_value,
                average_value=summary.average_value,
            ),
            metrics={key.value: MetricStateSchema.from_state(state) for key, state in snapshot.metrics.items()},
            last_updated=snapshot.last_updated,
            is_stale=snapshot.is_stale(threshold=stale_after),
            notice=snapshot.notice,
        )


class RefreshOutcomeSchema(CamelModel):
    success: bool
    partial_success: bool = False
    errors: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    @classmethod
    def from_outcome(cls, outcome: RefreshOutcome) -> "RefreshOutcomeSchema":
        return cls(
            success=outcome.success,
            partial_success=outcome.partial_success,
            errors=list(outcome.errors),
            failed=[metric.value for metric in outcome.failed],
        )


class MetricRefreshSchema(CamelModel):
    metric: str
    success: bool
    error: str | None = None
    superseded: bool = False

    @classmethod
    def from_result(cls, result: MetricRefreshResult) -> "MetricRefreshSchema":
        return cls(
            metric=result.metric.value,
            success=result.success,
            error=result.error,
            superseded=result.superseded,
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

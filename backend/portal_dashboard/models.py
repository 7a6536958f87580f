"""Domain models for the commerce portal dashboard."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
DEFAULT_STALE_AFTER = timedelta(minutes=10)
UNKNOWN_CUSTOMER = "Unknown Customer"


class MetricKey(str, Enum):
    STATS = "stats"
    CUSTOMERS = "customers"
    ORDERS = "orders"
    ASSISTANTS = "assistants"
    PERFORMANCE = "performance"
    REVENUE = "revenue"

    @property
    def label(self) -> str:
        return self.value.capitalize()


FULL_REFRESH_METRICS: Tuple[MetricKey, ...] = (
    MetricKey.STATS,
    MetricKey.CUSTOMERS,
    MetricKey.ORDERS,
    MetricKey.ASSISTANTS,
)
REPORT_METRICS: Tuple[MetricKey, ...] = (MetricKey.REVENUE, MetricKey.PERFORMANCE)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Order:
    """A normalized order as shown in the recent orders list."""

    id: str = ""
    customer_id: str = ""
    customer_name: str = UNKNOWN_CUSTOMER
    item: str = ""
    amount: float = 0.0
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = EPOCH

    def to_raw(self) -> dict[str, object]:
        """Return the record in the backend's camelCase shape."""

        return {
            "id": self.id,
            "customerId": self.customer_id,
            "customerName": self.customer_name,
            "item": self.item,
            "amount": self.amount,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Customer:
    """A normalized customer record."""

    id: str = ""
    name: str = UNKNOWN_CUSTOMER
    phone: str = ""
    last_order: datetime = EPOCH
    total_orders: int = 0
    total_spent: float = 0.0
    created_at: datetime = EPOCH

    def to_raw(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "lastOrder": self.last_order.isoformat(),
            "totalOrders": self.total_orders,
            "totalSpent": self.total_spent,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DashboardStats:
    """Headline counters; every value defaults to zero."""

    total_customers: float = 0
    total_orders: float = 0
    total_assistants: float = 0
    active_chats: float = 0
    monthly_revenue: float = 0
    today_orders: float = 0
    response_rate: float = 0
    active_customers: float = 0
    new_customers: float = 0


@dataclass(frozen=True)
class RevenuePoint:
    label: str = ""
    amount: float = 0.0


@dataclass(frozen=True)
class RevenueReport:
    total: float = 0.0
    points: Tuple[RevenuePoint, ...] = ()


@dataclass(frozen=True)
class AssistantPerformance:
    assistant_id: str = ""
    name: str = ""
    orders_handled: int = 0
    response_rate: float = 0.0
    revenue: float = 0.0


@dataclass(frozen=True)
class AssistantStats:
    """Assistant headcount split by availability."""

    total: int = 0
    active: int = 0
    inactive: int = 0

    @classmethod
    def from_counts(cls, total: int, active: int, inactive: Optional[int] = None) -> "AssistantStats":
        """Build from a total and an active count; ``inactive`` defaults to the remainder."""

        active = min(active, total)
        if inactive is None:
            inactive = total - active
        return cls(total=total, active=active, inactive=inactive)


@dataclass(frozen=True)
class MetricState:
    """Loading and error slot for a single dashboard section."""

    loading: bool = False
    error: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    updated_at: datetime = EPOCH


@dataclass(frozen=True)
class OrderSummary:
    total: int = 0
    by_status: Mapping[OrderStatus, int] = field(default_factory=lambda: MappingProxyType({}))
    total_value: float = 0.0
    average_value: float = 0.0


def _default_metric_states() -> Mapping[MetricKey, MetricState]:
    return MappingProxyType({key: MetricState() for key in MetricKey})


@dataclass(frozen=True)
class DashboardSnapshot:
    """Immutable, fully defaulted view of the dashboard."""

    stats: DashboardStats = field(default_factory=DashboardStats)
    recent_orders: Tuple[Order, ...] = ()
    recent_customers: Tuple[Customer, ...] = ()
    revenue: RevenueReport = field(default_factory=RevenueReport)
    performance: Tuple[AssistantPerformance, ...] = ()
    assistant_stats: AssistantStats = field(default_factory=AssistantStats)
    metrics: Mapping[MetricKey, MetricState] = field(default_factory=_default_metric_states)
    last_updated: datetime = EPOCH
    notice: str = ""

    @property
    def has_errors(self) -> bool:
        return any(state.error for state in self.metrics.values())

    def error_for(self, key: MetricKey | str) -> Optional[str]:
        return self.metrics[MetricKey(key)].error

    def is_loading(self, key: MetricKey | str) -> bool:
        return self.metrics[MetricKey(key)].loading

    def is_stale(
        self,
        now: datetime | None = None,
        threshold: timedelta = DEFAULT_STALE_AFTER,
    ) -> bool:
        """Return True when the dashboard was never refreshed or is older than ``threshold``."""

        if self.last_updated == EPOCH:
            return True
        current = now or datetime.now(timezone.utc)
        return current - self.last_updated > threshold

    def order_summary(self) -> OrderSummary:
        """Summarize the recent orders by status and value."""

        counts = {status: 0 for status in OrderStatus}
        total_value = 0.0
        for order in self.recent_orders:
            counts[order.status] += 1
            total_value += order.amount
        total = len(self.recent_orders)
        return OrderSummary(
            total=total,
            by_status=MappingProxyType(counts),
            total_value=total_value,
            average_value=total_value / total if total else 0.0,
        )


@dataclass(frozen=True)
class RefreshOutcome:
    """Result of one fetch-and-merge cycle over one or more metrics."""

    success: bool
    partial_success: bool = False
    errors: Tuple[str, ...] = ()
    failed: Tuple[MetricKey, ...] = ()


@dataclass(frozen=True)
class MetricRefreshResult:
    metric: MetricKey
    success: bool
    error: Optional[str] = None
    superseded: bool = False


__all__ = [
    "EPOCH",
    "DEFAULT_STALE_AFTER",
    "UNKNOWN_CUSTOMER",
    "MetricKey",
    "FULL_REFRESH_METRICS",
    "REPORT_METRICS",
    "OrderStatus",
    "Order",
    "Customer",
    "DashboardStats",
    "RevenuePoint",
    "RevenueReport",
    "AssistantPerformance",
    "AssistantStats",
    "MetricState",
    "OrderSummary",
    "DashboardSnapshot",
    "RefreshOutcome",
    "MetricRefreshResult",
]

"""Normalization of raw backend records into fully defaulted dashboard models.

Every record that reaches a snapshot passes through this module. Each field is
taken from the first of its known spellings that holds a usable value and
falls back to the documented default otherwise, so ``None`` never leaks into
the view model. Normalizing an already normalized record is a no-op.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, fields
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Sequence, Tuple, TypeVar

from .envelope import unwrap
from .errors import MalformedPayloadError
from .models import (
    EPOCH,
    UNKNOWN_CUSTOMER,
    AssistantPerformance,
    AssistantStats,
    Customer,
    DashboardStats,
    Order,
    OrderStatus,
    RevenuePoint,
    RevenueReport,
)

T = TypeVar("T")

_STATUS_ALIASES = {
    "processing": OrderStatus.IN_PROGRESS,
    "in progress": OrderStatus.IN_PROGRESS,
    "in-progress": OrderStatus.IN_PROGRESS,
    "inprogress": OrderStatus.IN_PROGRESS,
    "shipped": OrderStatus.IN_PROGRESS,
    "delivered": OrderStatus.COMPLETED,
    "complete": OrderStatus.COMPLETED,
    "done": OrderStatus.COMPLETED,
    "canceled": OrderStatus.CANCELLED,
}

_ORDER_KEYS = ("orders", "recentOrders", "items", "results")
_CUSTOMER_KEYS = ("customers", "recentCustomers", "items", "results")
_ASSISTANT_KEYS = ("assistants", "items", "results")
_PERFORMANCE_KEYS = ("assistants", "performance", "items", "results")
_REVENUE_POINT_KEYS = ("series", "breakdown", "revenueByPeriod", "data", "items")


class UpstreamOrder(str, Enum):
    """How an endpoint orders the records it returns."""

    ASCENDING = "ascending"
    DESCENDING = "descending"
    UNSORTED = "unsorted"


@dataclass(frozen=True)
class StatsSection:
    values: Mapping[str, float]


@dataclass(frozen=True)
class RecordPage:
    records: Tuple[Any, ...]
    total: int


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def _as_text(value: Any, default: str = "") -> str:
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, (str, int, float)):
        text = str(value).strip()
        return text or default
    return default


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def as_amount(value: Any) -> float:
    """Return a non-negative finite amount, ``0.0`` when unusable."""

    number = _as_number(value)
    if number is None or number < 0:
        return 0.0
    return number


def as_count(value: Any) -> int:
    number = _as_number(value)
    if number is None or number < 0:
        return 0
    return int(number)


def as_datetime(value: Any) -> datetime:
    """Parse a timestamp into an aware UTC datetime, ``EPOCH`` when unusable."""

    parsed: datetime | None = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            parsed = None
    elif not isinstance(value, bool) and isinstance(value, (int, float)):
        seconds = float(value)
        # millisecond timestamps as produced by Date.now()
        if seconds > 1e11:
            seconds /= 1000.0
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            parsed = None
    if parsed is None:
        return EPOCH
    try:
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # offsets can push dates at the calendar limits out of range
        return EPOCH


def _reference_id(value: Any) -> str:
    if isinstance(value, Mapping):
        return _as_text(_first(value, "_id", "id"))
    return _as_text(value)


def _person_name(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if not isinstance(value, Mapping):
        return ""
    name = _as_text(_first(value, "fullName", "name", "displayName"))
    if name:
        return name
    parts = [_as_text(value.get("firstName")), _as_text(value.get("lastName"))]
    return " ".join(part for part in parts if part)


def normalize_status(value: Any) -> OrderStatus:
    """Map a raw status onto the closed set, defaulting to ``pending``."""

    if isinstance(value, OrderStatus):
        return value
    text = _as_text(value).lower()
    if not text:
        return OrderStatus.PENDING
    try:
        return OrderStatus(text)
    except ValueError:
        return _STATUS_ALIASES.get(text, OrderStatus.PENDING)


def _item_label(raw: Mapping[str, Any]) -> str:
    label = _as_text(_first(raw, "item", "itemName", "productName"))
    if label:
        return label
    product = raw.get("product")
    if isinstance(product, Mapping):
        label = _as_text(_first(product, "name", "title"))
    else:
        label = _as_text(product)
    if label:
        return label
    items = raw.get("items")
    if isinstance(items, list) and items:
        head = items[0]
        if isinstance(head, Mapping):
            return _as_text(_first(head, "name", "title", "item"))
        return _as_text(head)
    return _as_text(raw.get("description"))


def normalize_order(raw: Mapping[str, Any] | Order | Any) -> Order:
    """Build an :class:`Order` from any of the backend's order shapes."""

    if isinstance(raw, Order):
        raw = raw.to_raw()
    if not isinstance(raw, Mapping):
        return Order()

    customer_ref = _first(raw, "customerId", "customer_id")
    customer_obj = raw.get("customer")
    customer_id = _reference_id(customer_ref)
    if not customer_id and isinstance(customer_obj, Mapping):
        customer_id = _reference_id(customer_obj)

    customer_name = _as_text(_first(raw, "customerName", "customer_name"))
    if not customer_name:
        customer_name = _person_name(customer_obj) or _person_name(
            customer_ref if isinstance(customer_ref, Mapping) else None
        )

    return Order(
        id=_as_text(_first(raw, "id", "_id", "orderId")),
        customer_id=customer_id,
        customer_name=customer_name or UNKNOWN_CUSTOMER,
        item=_item_label(raw),
        amount=as_amount(_first(raw, "amount", "totalAmount", "total", "price")),
        status=normalize_status(raw.get("status")),
        created_at=as_datetime(_first(raw, "createdAt", "created_at", "date", "orderDate")),
    )


def normalize_customer(raw: Mapping[str, Any] | Customer | Any) -> Customer:
    """Build a :class:`Customer` from a raw backend record."""

    if isinstance(raw, Customer):
        raw = raw.to_raw()
    if not isinstance(raw, Mapping):
        return Customer()

    last_order = _first(raw, "lastOrder", "lastOrderDate", "last_order")
    if isinstance(last_order, Mapping):
        last_order = _first(last_order, "createdAt", "date")

    total_orders = _first(raw, "totalOrders", "ordersCount", "orderCount", "total_orders")
    if total_orders is None and isinstance(raw.get("orders"), list):
        total_orders = len(raw["orders"])

    return Customer(
        id=_as_text(_first(raw, "id", "_id", "customerId")),
        name=_person_name(raw) or UNKNOWN_CUSTOMER,
        phone=_as_text(_first(raw, "phone", "phoneNumber", "whatsappNumber", "whatsapp")),
        last_order=as_datetime(last_order),
        total_orders=as_count(total_orders),
        total_spent=as_amount(_first(raw, "totalSpent", "total_spent", "lifetimeValue")),
        created_at=as_datetime(_first(raw, "createdAt", "created_at", "joinedAt", "registeredAt")),
    )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


STATS_FIELDS: Tuple[str, ...] = tuple(f.name for f in fields(DashboardStats))
_STATS_ALIASES = {alias: name for name in STATS_FIELDS for alias in (name, _camel(name))}


def normalize_stats(raw: Mapping[str, Any]) -> dict[str, float]:
    """Return the recognised counters present in ``raw``.

    Only counters with a usable numeric value are returned, so callers can tell
    supplied values from defaults.
    """

    values: dict[str, float] = {}
    for key, value in raw.items():
        name = _STATS_ALIASES.get(key)
        if name is None:
            continue
        number = _as_number(value)
        if number is None:
            continue
        values[name] = max(number, 0.0)
    return values


def build_stats(values: Mapping[str, float]) -> DashboardStats:
    return DashboardStats(**{name: values[name] for name in STATS_FIELDS if name in values})


def select_recent(
    records: Sequence[T],
    limit: int,
    ordering: UpstreamOrder = UpstreamOrder.UNSORTED,
    *,
    key: Callable[[T], datetime] = lambda record: record.created_at,  # type: ignore[attr-defined]
) -> Tuple[T, ...]:
    """Return the ``limit`` newest records, newest first.

    ``ASCENDING`` input is oldest first, so the tail is taken and reversed;
    ``DESCENDING`` input is already newest first and the head is taken;
    ``UNSORTED`` input is stably sorted by ``key`` descending before the head
    is taken.
    """

    if limit <= 0:
        return ()
    if ordering is UpstreamOrder.ASCENDING:
        return tuple(reversed(records[-limit:]))
    if ordering is UpstreamOrder.DESCENDING:
        return tuple(records[:limit])
    return tuple(sorted(records, key=key, reverse=True)[:limit])


def _extract_list(data: Any, keys: Iterable[str], what: str) -> List[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for key in keys:
            value = data.get(key)
            if isinstance(value, list):
                return value
    raise MalformedPayloadError(f"Unexpected {what} payload shape")


def _reported_total(data: Any, fallback: int) -> int:
    if not isinstance(data, Mapping):
        return fallback
    total = _first(data, "total", "count", "totalCount")
    if total is None and isinstance(data.get("pagination"), Mapping):
        total = data["pagination"].get("total")
    number = _as_number(total)
    if number is None or number < 0:
        return fallback
    return int(number)


def _parse_page(
    payload: Any,
    keys: Iterable[str],
    what: str,
    normalizer: Callable[[Any], T],
    limit: int,
    ordering: UpstreamOrder,
) -> RecordPage:
    data = unwrap(payload)
    items = [item for item in _extract_list(data, keys, what) if isinstance(item, Mapping)]
    records = [normalizer(item) for item in items]
    return RecordPage(
        records=select_recent(records, limit, ordering),
        total=_reported_total(data, len(records)),
    )


def parse_orders(
    payload: Any,
    *,
    limit: int = 5,
    ordering: UpstreamOrder = UpstreamOrder.UNSORTED,
) -> RecordPage:
    return _parse_page(payload, _ORDER_KEYS, "orders", normalize_order, limit, ordering)


def parse_customers(
    payload: Any,
    *,
    limit: int = 5,
    ordering: UpstreamOrder = UpstreamOrder.UNSORTED,
) -> RecordPage:
    return _parse_page(payload, _CUSTOMER_KEYS, "customers", normalize_customer, limit, ordering)


def parse_stats(payload: Any) -> StatsSection:
    """Parse the stats endpoint, flat or bundled as ``{"stats": {...}}``."""

    data = unwrap(payload)
    if not isinstance(data, Mapping):
        raise MalformedPayloadError("Unexpected stats payload shape")
    nested = data.get("stats")
    if isinstance(nested, Mapping):
        data = nested
    return StatsSection(values=normalize_stats(data))


def _is_active(raw: Mapping[str, Any]) -> bool:
    if raw.get("isActive") is True or raw.get("active") is True:
        return True
    return _as_text(raw.get("status")).lower() in ("active", "online")


def parse_assistants(payload: Any) -> AssistantStats:
    data = unwrap(payload)
    try:
        items = _extract_list(data, _ASSISTANT_KEYS, "assistants")
    except MalformedPayloadError:
        if not isinstance(data, Mapping):
            raise
        total = _first(data, "total", "count", "totalAssistants")
        if _as_number(total) is None:
            raise
        active = as_count(_first(data, "active", "activeAssistants"))
        inactive = _first(data, "inactive", "inactiveAssistants")
        return AssistantStats.from_counts(
            as_count(total),
            active,
            None if inactive is None else as_count(inactive),
        )
    assistants = [item for item in items if isinstance(item, Mapping)]
    return AssistantStats.from_counts(
        _reported_total(data, len(assistants)),
        sum(1 for item in assistants if _is_active(item)),
    )


def _revenue_point(raw: Mapping[str, Any]) -> RevenuePoint:
    label = _first(raw, "period", "label", "date", "month", "_id")
    if isinstance(label, Mapping):
        label = "-".join(_as_text(value) for value in label.values())
    return RevenuePoint(
        label=_as_text(label),
        amount=as_amount(_first(raw, "amount", "revenue", "total")),
    )


def parse_revenue(payload: Any) -> RevenueReport:
    data = unwrap(payload)
    if isinstance(data, list):
        raw_points: List[Any] = data
        total = None
    elif isinstance(data, Mapping):
        raw_points = []
        for key in _REVENUE_POINT_KEYS:
            if isinstance(data.get(key), list):
                raw_points = data[key]
                break
        total = _first(data, "totalRevenue", "total", "revenue")
    else:
        raise MalformedPayloadError("Unexpected revenue payload shape")
    points = tuple(_revenue_point(item) for item in raw_points if isinstance(item, Mapping))
    reported = _as_number(total)
    if reported is None:
        return RevenueReport(total=sum(point.amount for point in points), points=points)
    return RevenueReport(total=max(reported, 0.0), points=points)


def _assistant_performance(raw: Mapping[str, Any]) -> AssistantPerformance:
    reference = _first(raw, "assistantId", "assistant")
    assistant_id = _reference_id(reference) or _as_text(_first(raw, "_id", "id"))
    name = _as_text(_first(raw, "name", "fullName", "assistantName"))
    if not name and isinstance(reference, Mapping):
        name = _person_name(reference)
    orders = _first(raw, "ordersHandled", "totalOrders", "orders")
    if isinstance(orders, list):
        orders = len(orders)
    return AssistantPerformance(
        assistant_id=assistant_id,
        name=name,
        orders_handled=as_count(orders),
        response_rate=as_amount(raw.get("responseRate")),
        revenue=as_amount(_first(raw, "revenue", "totalRevenue")),
    )


def parse_performance(payload: Any) -> Tuple[AssistantPerformance, ...]:
    data = unwrap(payload)
    items = _extract_list(data, _PERFORMANCE_KEYS, "performance")
    rows = [_assistant_performance(item) for item in items if isinstance(item, Mapping)]
    rows.sort(key=lambda row: row.orders_handled, reverse=True)
    return tuple(rows)


__all__ = [
    "UpstreamOrder",
    "StatsSection",
    "RecordPage",
    "STATS_FIELDS",
    "as_amount",
    "as_count",
    "as_datetime",
    "normalize_status",
    "normalize_order",
    "normalize_customer",
    "normalize_stats",
    "build_stats",
    "select_recent",
    "parse_orders",
    "parse_customers",
    "parse_stats",
    "parse_assistants",
    "parse_revenue",
    "parse_performance",
]

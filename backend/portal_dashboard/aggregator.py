"""Concurrent aggregation of dashboard sections with per-section degradation.

The aggregator fans out one request per metric, normalizes every payload and
merges the successes into a single immutable :class:`DashboardSnapshot`.
A failing metric only touches its own error slot: earlier data for that
section stays in place and the other sections are merged as usual. Network
and payload failures are never raised to callers; only misuse (an unknown
metric, a closed aggregator) raises.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime, timezone
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import AggregatorClosedError, ErrorInfo, UnknownMetricError, classify_error, generic_message
from .models import (
    EPOCH,
    FULL_REFRESH_METRICS,
    REPORT_METRICS,
    AssistantStats,
    DashboardSnapshot,
    MetricKey,
    MetricRefreshResult,
    MetricState,
    RefreshOutcome,
    RevenueReport,
)
from .normalize import (
    UpstreamOrder,
    build_stats,
    parse_assistants,
    parse_customers,
    parse_orders,
    parse_performance,
    parse_revenue,
    parse_stats,
)
from .notices import TimedNotice
from .sources import DEFAULT_RESOURCES, DataSource

logger = logging.getLogger(__name__)

Subscriber = Callable[[DashboardSnapshot], None]

NO_RETRYABLE_OPERATION = "No retryable operation available"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_metric(key: MetricKey | str) -> MetricKey:
    """Return the :class:`MetricKey` for ``key`` or raise :class:`UnknownMetricError`."""

    try:
        return MetricKey(key)
    except (ValueError, TypeError):
        raise UnknownMetricError(key) from None


def _resolve_many(keys: Iterable[MetricKey | str]) -> Tuple[MetricKey, ...]:
    return tuple(dict.fromkeys(resolve_metric(key) for key in keys))


class DashboardAggregator:
    """Owns the dashboard snapshot and the refresh operations that feed it.

    Requests for different metrics run interleaved without coordination.
    Requests for the same metric are numbered as they are issued and a result
    is merged only when it is newer than the last merged one, so the most
    recently issued refresh wins and a slower, older response is discarded.
    """

    def __init__(
        self,
        source: DataSource,
        *,
        resources: Mapping[MetricKey | str, str] | None = None,
        recent_limit: int = 5,
        orderings: Mapping[MetricKey | str, UpstreamOrder | str] | None = None,
        full_refresh: Iterable[MetricKey | str] = FULL_REFRESH_METRICS,
        notice_ttl_seconds: float | None = 3.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._resources: Dict[MetricKey, str] = dict(DEFAULT_RESOURCES)
        for key, resource in (resources or {}).items():
            self._resources[resolve_metric(key)] = resource
        order_for = {resolve_metric(key): UpstreamOrder(value) for key, value in (orderings or {}).items()}
        self._parsers: Dict[MetricKey, Callable[[Any], Any]] = {
            MetricKey.STATS: parse_stats,
            MetricKey.CUSTOMERS: partial(
                parse_customers,
                limit=recent_limit,
                ordering=order_for.get(MetricKey.CUSTOMERS, UpstreamOrder.UNSORTED),
            ),
            MetricKey.ORDERS: partial(
                parse_orders,
                limit=recent_limit,
                ordering=order_for.get(MetricKey.ORDERS, UpstreamOrder.UNSORTED),
            ),
            MetricKey.ASSISTANTS: parse_assistants,
            MetricKey.REVENUE: parse_revenue,
            MetricKey.PERFORMANCE: parse_performance,
        }
        self._full_refresh = _resolve_many(full_refresh)
        self._clock = clock

        self._sections: Dict[MetricKey, Any] = {}
        self._states: Dict[MetricKey, MetricState] = {key: MetricState() for key in MetricKey}
        self._in_flight: Dict[MetricKey, int] = defaultdict(int)
        self._issued: Dict[MetricKey, int] = defaultdict(int)
        self._applied: Dict[MetricKey, int] = defaultdict(int)
        self._last_updated = EPOCH
        self._subscribers: List[Subscriber] = []
        self._auto_refresh: Optional[asyncio.Task[None]] = None
        self._closed = False
        self._notice = TimedNotice(notice_ttl_seconds, self._publish)
        self._snapshot = self._compose()

    async def __aenter__(self) -> "DashboardAggregator":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def source(self) -> DataSource:
        return self._source

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def snapshot(self) -> DashboardSnapshot:
        return self._snapshot

    def get_snapshot(self) -> DashboardSnapshot:
        """Return the current snapshot; never raises."""

        return self._snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every published snapshot.

        Returns a function that removes the registration.
        """

        self._ensure_open()
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def fetch_all(self, metrics: Iterable[MetricKey | str] | None = None) -> RefreshOutcome:
        """Refresh every full-refresh metric (or ``metrics``) concurrently.

        Waits until each request has settled; one failure never prevents the
        other sections from being merged.
        """

        keys = self._full_refresh if metrics is None else _resolve_many(metrics)
        self._ensure_open()
        outcome = await self._refresh_many(keys)
        if outcome.success:
            self._announce("All dashboard data refreshed successfully")
        elif outcome.partial_success:
            self._announce("Some dashboard sections failed to refresh")
        else:
            self._announce("Failed to refresh dashboard data")
        return outcome

    async def fetch_reports(self) -> RefreshOutcome:
        """Refresh the revenue and performance reports concurrently."""

        return await self.fetch_all(REPORT_METRICS)

    async def refresh_metric(self, key: MetricKey | str) -> MetricRefreshResult:
        """Re-fetch exactly one metric, leaving every other section untouched."""

        metric = resolve_metric(key)
        self._ensure_open()
        result = await self._refresh(metric)
        if result.success:
            self._announce(f"{metric.label} data refreshed successfully")
        else:
            self._announce(generic_message(metric.value))
        return result

    async def retry_failed(self) -> RefreshOutcome:
        """Re-fetch the metrics whose last failure is marked retryable."""

        self._ensure_open()
        keys = [key for key, state in self._states.items() if state.error and state.retryable]
        if not keys:
            return RefreshOutcome(success=False, errors=(NO_RETRYABLE_OPERATION,))
        logger.info("Retrying failed metrics: %s", ", ".join(key.value for key in keys))
        return await self.fetch_all(keys)

    def start_auto_refresh(self, interval_seconds: float) -> None:
        """Run :meth:`fetch_all` every ``interval_seconds`` until stopped or closed."""

        self._ensure_open()
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.stop_auto_refresh()
        loop = asyncio.get_running_loop()
        self._auto_refresh = loop.create_task(self._auto_refresh_loop(interval_seconds))

    def stop_auto_refresh(self) -> None:
        task, self._auto_refresh = self._auto_refresh, None
        if task is not None and not task.done():
            task.cancel()

    def close(self) -> None:
        """Tear down: later results are dropped and refresh calls raise."""

        if self._closed:
            return
        self._closed = True
        self.stop_auto_refresh()
        self._notice.cancel()
        self._subscribers.clear()
        logger.debug("Dashboard aggregator closed")

    async def aclose(self) -> None:
        task = self._auto_refresh
        self.close()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def _auto_refresh_loop(self, interval_seconds: float) -> None:
        while not self._closed:
            await asyncio.sleep(interval_seconds)
            if self._closed:
                break
            outcome = await self.fetch_all()
            if not outcome.success:
                logger.info("Auto-refresh incomplete: %s", "; ".join(outcome.errors))

    async def _refresh_many(self, keys: Tuple[MetricKey, ...]) -> RefreshOutcome:
        results = await asyncio.gather(*(self._refresh(key) for key in keys))
        failed = tuple(result.metric for result in results if not result.success)
        errors = tuple(f"{result.metric.value}: {result.error}" for result in results if not result.success)
        return RefreshOutcome(
            success=not failed,
            partial_success=bool(failed) and len(failed) < len(results),
            errors=errors,
            failed=failed,
        )

    async def _refresh(self, key: MetricKey) -> MetricRefreshResult:
        self._issued[key] += 1
        ticket = self._issued[key]
        self._in_flight[key] += 1
        self._set_state(key, loading=True)

        section: Any = None
        failure: Optional[ErrorInfo] = None
        try:
            payload = await self._source.fetch(self._resources[key])
            section = self._parsers[key](payload)
        except asyncio.CancelledError:
            self._in_flight[key] -= 1
            self._set_state(key, loading=self._in_flight[key] > 0)
            raise
        except Exception as exc:
            failure = classify_error(exc, key.value)
            logger.warning("Refreshing %s failed (%s): %s", key.value, failure.kind, failure.message)
        self._in_flight[key] -= 1

        error = failure.message if failure else None
        if self._closed:
            # torn down while in flight: nothing observes the snapshot anymore
            return MetricRefreshResult(metric=key, success=failure is None, error=error, superseded=True)

        superseded = ticket < self._applied[key]
        loading = self._in_flight[key] > 0
        if superseded:
            logger.debug("Discarding superseded %s response (#%d)", key.value, ticket)
            self._states[key] = replace(self._states[key], loading=loading)
        elif failure is None:
            now = self._clock()
            self._applied[key] = ticket
            self._sections[key] = section
            self._last_updated = now
            self._states[key] = MetricState(loading=loading, updated_at=now)
        else:
            self._applied[key] = ticket
            self._states[key] = MetricState(
                loading=loading,
                error=failure.message,
                error_kind=failure.kind,
                retryable=failure.retryable,
                updated_at=self._states[key].updated_at,
            )
        self._publish()
        return MetricRefreshResult(metric=key, success=failure is None, error=error, superseded=superseded)

    def _set_state(self, key: MetricKey, **changes: Any) -> None:
        if self._closed:
            return
        self._states[key] = replace(self._states[key], **changes)
        self._publish()

    def _announce(self, message: str) -> None:
        self._notice.show(message)
        self._publish()

    def _ensure_open(self) -> None:
        if self._closed:
            raise AggregatorClosedError("Dashboard aggregator is closed")

    def _compose(self) -> DashboardSnapshot:
        stats = self._sections.get(MetricKey.STATS)
        customers = self._sections.get(MetricKey.CUSTOMERS)
        orders = self._sections.get(MetricKey.ORDERS)
        assistants = self._sections.get(MetricKey.ASSISTANTS)

        # the stats endpoint wins for counters it supplies
        values = dict(stats.values) if stats is not None else {}
        if customers is not None:
            values.setdefault("total_customers", customers.total)
        if orders is not None:
            values.setdefault("total_orders", orders.total)
        if assistants is not None:
            values.setdefault("total_assistants", assistants.total)

        return DashboardSnapshot(
            stats=build_stats(values),
            recent_orders=orders.records if orders is not None else (),
            recent_customers=customers.records if customers is not None else (),
            revenue=self._sections.get(MetricKey.REVENUE, RevenueReport()),
            performance=self._sections.get(MetricKey.PERFORMANCE, ()),
            assistant_stats=assistants if assistants is not None else AssistantStats(),
            metrics=MappingProxyType(dict(self._states)),
            last_updated=self._last_updated,
            notice=self._notice.message,
        )

    def _publish(self) -> None:
        if self._closed:
            return
        snapshot = self._compose()
        self._snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Dashboard subscriber %r failed", callback)


__all__ = ["DashboardAggregator", "NO_RETRYABLE_OPERATION", "Subscriber", "resolve_metric"]

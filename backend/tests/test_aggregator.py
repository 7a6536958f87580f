"""Dashboard aggregator tests: partial failure, concurrency and teardown."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from conftest import make_customer, make_order
from portal_dashboard import (
    AggregatorClosedError,
    DashboardAggregator,
    InMemorySource,
    MetricKey,
    UnknownMetricError,
    UpstreamError,
)
from portal_dashboard.aggregator import NO_RETRYABLE_OPERATION
from portal_dashboard.models import EPOCH

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _source(**overrides: object) -> InMemorySource:
    responses: dict[str, object] = {
        "/admin-dashboard/stats": {"success": True, "data": {"activeChats": 4, "monthlyRevenue": 1200}},
        "/customers": [make_customer(i) for i in range(1, 4)],
        "/orders": {"data": [make_order(i) for i in range(1, 3)]},
        "/assistants": [{"_id": "a1", "isActive": True}],
        "/reports/revenue": {"data": {"totalRevenue": 500, "series": [{"period": "May", "amount": 500}]}},
        "/reports/performance": [{"_id": "a1", "name": "Tobi", "ordersHandled": 7}],
    }
    for resource, response in overrides.items():
        responses[f"/{resource}"] = response
    return InMemorySource(responses)


def _aggregator(source: InMemorySource, **kwargs: object) -> DashboardAggregator:
    kwargs.setdefault("notice_ttl_seconds", None)
    return DashboardAggregator(source, clock=lambda: FIXED_NOW, **kwargs)


def _gated(release: asyncio.Event, first: object, later: object):
    """Responder whose first call blocks on ``release``; later calls answer at once."""

    calls: list[int] = []

    async def respond(params):
        calls.append(1)
        if len(calls) == 1:
            await release.wait()
            return first
        return later

    return respond


@pytest.mark.asyncio
async def test_full_refresh_merges_every_section():
    aggregator = _aggregator(_source())

    outcome = await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert outcome.success is True
    assert outcome.errors == ()
    assert snapshot.stats.active_chats == 4
    assert snapshot.stats.monthly_revenue == 1200
    assert snapshot.stats.total_customers == 3
    assert snapshot.stats.total_orders == 2
    assert snapshot.stats.total_assistants == 1
    assert [o.id for o in snapshot.recent_orders] == ["ord-2", "ord-1"]
    assert snapshot.last_updated == FIXED_NOW
    assert not snapshot.has_errors
    assert all(not state.loading for state in snapshot.metrics.values())


@pytest.mark.asyncio
async def test_customer_failure_leaves_orders_and_prior_customers():
    source = _source()
    aggregator = _aggregator(source)
    await aggregator.fetch_all()
    before = aggregator.get_snapshot()

    source.set("/customers", UpstreamError("Customer service down", status_code=503))
    source.set("/orders", [make_order(i) for i in range(1, 5)])
    outcome = await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert outcome.success is False
    assert outcome.partial_success is True
    assert outcome.failed == (MetricKey.CUSTOMERS,)
    assert outcome.errors == ("customers: Customer service down",)
    assert snapshot.error_for("customers") == "Customer service down"
    assert snapshot.metrics[MetricKey.CUSTOMERS].retryable is True
    assert snapshot.recent_customers == before.recent_customers
    assert [o.id for o in snapshot.recent_orders] == ["ord-4", "ord-3", "ord-2", "ord-1"]
    assert snapshot.error_for("orders") is None


@pytest.mark.asyncio
async def test_first_time_failure_keeps_defaults():
    aggregator = _aggregator(_source(customers=UpstreamError("Customer service down", status_code=503)))

    await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert snapshot.recent_customers == ()
    assert snapshot.stats.total_customers == 0
    assert len(snapshot.recent_orders) == 2


@pytest.mark.asyncio
async def test_stats_failure_is_partial_success():
    aggregator = _aggregator(_source(**{"admin-dashboard/stats": UpstreamError("", status_code=500)}))

    outcome = await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert outcome.success is False
    assert outcome.partial_success is True
    assert outcome.failed == (MetricKey.STATS,)
    assert snapshot.error_for("stats") == "Failed to refresh stats data"
    assert snapshot.stats.active_chats == 0
    assert snapshot.stats.total_customers == 3
    assert len(snapshot.recent_customers) == 3


@pytest.mark.asyncio
async def test_every_metric_failing_is_not_partial():
    source = InMemorySource({})
    aggregator = _aggregator(source)

    outcome = await aggregator.fetch_all()

    assert outcome.success is False
    assert outcome.partial_success is False
    assert len(outcome.errors) == 4
    assert aggregator.get_snapshot().last_updated == EPOCH


@pytest.mark.asyncio
async def test_stats_counter_wins_over_section_total():
    aggregator = _aggregator(_source(**{"admin-dashboard/stats": {"totalCustomers": 12}}))

    await aggregator.fetch_all()
    stats = aggregator.get_snapshot().stats

    assert stats.total_customers == 12
    assert stats.monthly_revenue == 0


@pytest.mark.asyncio
async def test_customer_total_fills_missing_stats_counter(raw_customers):
    aggregator = _aggregator(_source(customers=raw_customers, **{"admin-dashboard/stats": {}}))

    await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert snapshot.stats.total_customers == 7
    assert [c.id for c in snapshot.recent_customers] == ["cus-7", "cus-6", "cus-5", "cus-4", "cus-3"]


@pytest.mark.asyncio
async def test_malformed_payload_is_reported_not_raised():
    aggregator = _aggregator(_source(orders={"unexpected": 1}))

    outcome = await aggregator.fetch_all()
    state = aggregator.get_snapshot().metrics[MetricKey.ORDERS]

    assert outcome.failed == (MetricKey.ORDERS,)
    assert state.error_kind == "malformed"
    assert aggregator.get_snapshot().recent_orders == ()


@pytest.mark.asyncio
async def test_other_metric_unaffected_while_one_is_loading():
    release = asyncio.Event()
    source = _source(assistants=UpstreamError("Assistants offline", status_code=503))
    aggregator = _aggregator(source)
    await aggregator.fetch_all()
    source.set("/orders", _gated(release, [make_order(9)], []))

    task = asyncio.create_task(aggregator.refresh_metric("orders"))
    await asyncio.sleep(0)
    during = aggregator.get_snapshot()

    assert during.is_loading("orders") is True
    assert during.is_loading("assistants") is False
    assert during.error_for("assistants") == "Assistants offline"
    assert [o.id for o in during.recent_orders] == ["ord-2", "ord-1"]

    release.set()
    result = await task
    after = aggregator.get_snapshot()

    assert result.success is True
    assert after.is_loading("orders") is False
    assert [o.id for o in after.recent_orders] == ["ord-9"]
    assert after.error_for("assistants") == "Assistants offline"


@pytest.mark.asyncio
async def test_latest_issued_refresh_wins():
    release = asyncio.Event()
    source = _source(orders=_gated(release, [make_order(1)], [make_order(2)]))
    aggregator = _aggregator(source)

    older = asyncio.create_task(aggregator.refresh_metric(MetricKey.ORDERS))
    await asyncio.sleep(0)
    newer = await aggregator.refresh_metric(MetricKey.ORDERS)

    assert newer.superseded is False
    assert [o.id for o in aggregator.get_snapshot().recent_orders] == ["ord-2"]
    assert aggregator.get_snapshot().is_loading("orders") is True

    release.set()
    stale = await older

    assert stale.superseded is True
    assert [o.id for o in aggregator.get_snapshot().recent_orders] == ["ord-2"]
    assert aggregator.get_snapshot().is_loading("orders") is False


@pytest.mark.asyncio
async def test_superseded_failure_does_not_set_error():
    release = asyncio.Event()

    async def fail_slowly(params):
        await release.wait()
        raise UpstreamError("late failure", status_code=500)

    source = _source(orders=fail_slowly)
    aggregator = _aggregator(source)

    older = asyncio.create_task(aggregator.refresh_metric("orders"))
    await asyncio.sleep(0)
    source.set("/orders", [make_order(3)])
    await aggregator.refresh_metric("orders")
    release.set()
    await older

    assert aggregator.get_snapshot().error_for("orders") is None
    assert [o.id for o in aggregator.get_snapshot().recent_orders] == ["ord-3"]


@pytest.mark.asyncio
async def test_refresh_metric_touches_only_its_section():
    source = _source()
    aggregator = _aggregator(source)
    await aggregator.fetch_all()
    before = aggregator.get_snapshot()
    source.calls.clear()

    result = await aggregator.refresh_metric("customers")
    after = aggregator.get_snapshot()

    assert result.success is True
    assert source.calls == ["/customers"]
    assert after.recent_orders == before.recent_orders
    assert after.stats == before.stats


@pytest.mark.asyncio
async def test_unknown_metric_raises():
    aggregator = _aggregator(_source())

    with pytest.raises(UnknownMetricError):
        await aggregator.refresh_metric("messages")
    with pytest.raises(UnknownMetricError):
        await aggregator.fetch_all(["orders", "bogus"])


@pytest.mark.asyncio
async def test_results_after_close_are_dropped():
    release = asyncio.Event()
    source = _source()
    aggregator = _aggregator(source)
    await aggregator.fetch_all()
    published = []
    aggregator.subscribe(published.append)
    source.set("/orders", _gated(release, [make_order(7)], []))

    task = asyncio.create_task(aggregator.refresh_metric("orders"))
    await asyncio.sleep(0)
    frozen = aggregator.get_snapshot()
    aggregator.close()
    count = len(published)
    release.set()
    result = await task

    assert result.superseded is True
    assert aggregator.get_snapshot() is frozen
    assert len(published) == count


@pytest.mark.asyncio
async def test_closed_aggregator_rejects_refresh_but_serves_snapshot():
    aggregator = _aggregator(_source())
    await aggregator.fetch_all()
    await aggregator.aclose()

    assert aggregator.closed is True
    assert len(aggregator.get_snapshot().recent_orders) == 2
    with pytest.raises(AggregatorClosedError):
        await aggregator.fetch_all()
    with pytest.raises(AggregatorClosedError):
        await aggregator.refresh_metric("orders")
    with pytest.raises(AggregatorClosedError):
        aggregator.subscribe(lambda snapshot: None)


@pytest.mark.asyncio
async def test_subscribers_receive_snapshots_and_failures_are_isolated(caplog):
    aggregator = _aggregator(_source())
    received = []

    def broken(snapshot):
        raise RuntimeError("subscriber bug")

    aggregator.subscribe(broken)
    unsubscribe = aggregator.subscribe(received.append)

    with caplog.at_level(logging.ERROR, logger="portal_dashboard.aggregator"):
        await aggregator.refresh_metric("stats")

    assert received
    assert received[-1] is aggregator.get_snapshot()
    assert "subscriber" in caplog.text

    unsubscribe()
    count = len(received)
    await aggregator.refresh_metric("stats")
    assert len(received) == count


@pytest.mark.asyncio
async def test_retry_failed_only_refetches_retryable_metrics():
    source = _source(
        orders=UpstreamError("Orders down", status_code=503),
        customers=UpstreamError("Not found", status_code=404),
    )
    aggregator = _aggregator(source)
    await aggregator.fetch_all()
    source.set("/orders", [make_order(5)])
    source.calls.clear()

    outcome = await aggregator.retry_failed()
    snapshot = aggregator.get_snapshot()

    assert outcome.success is True
    assert source.calls == ["/orders"]
    assert snapshot.error_for("orders") is None
    assert snapshot.error_for("customers") == "Not found"


@pytest.mark.asyncio
async def test_retry_without_retryable_failures():
    aggregator = _aggregator(_source(customers=UpstreamError("Forbidden", status_code=403)))
    await aggregator.fetch_all()

    outcome = await aggregator.retry_failed()

    assert outcome.success is False
    assert outcome.errors == (NO_RETRYABLE_OPERATION,)


@pytest.mark.asyncio
async def test_fetch_reports_fills_revenue_and_performance():
    source = _source()
    aggregator = _aggregator(source)

    outcome = await aggregator.fetch_reports()
    snapshot = aggregator.get_snapshot()

    assert outcome.success is True
    assert sorted(source.calls) == ["/reports/performance", "/reports/revenue"]
    assert snapshot.revenue.total == 500
    assert snapshot.performance[0].orders_handled == 7


@pytest.mark.asyncio
async def test_notice_is_shown_then_cleared():
    aggregator = _aggregator(_source(), notice_ttl_seconds=0.01)

    await aggregator.refresh_metric("orders")
    assert aggregator.get_snapshot().notice == "Orders data refreshed successfully"

    await asyncio.sleep(0.05)
    assert aggregator.get_snapshot().notice == ""

    aggregator.close()


@pytest.mark.asyncio
async def test_failure_notice_uses_generic_text():
    aggregator = _aggregator(_source(orders=UpstreamError("Orders down", status_code=503)))

    await aggregator.refresh_metric("orders")

    assert aggregator.get_snapshot().notice == "Failed to refresh orders data"


@pytest.mark.asyncio
async def test_auto_refresh_runs_until_closed():
    source = _source()
    aggregator = _aggregator(source)

    aggregator.start_auto_refresh(0.01)
    await asyncio.sleep(0.05)
    await aggregator.aclose()
    calls = len(source.calls)
    await asyncio.sleep(0.03)

    assert calls >= 4
    assert len(source.calls) == calls


@pytest.mark.asyncio
async def test_auto_refresh_rejects_non_positive_interval():
    aggregator = _aggregator(_source())

    with pytest.raises(ValueError):
        aggregator.start_auto_refresh(0)


@pytest.mark.asyncio
async def test_snapshot_is_immutable_and_stale_until_loaded():
    aggregator = _aggregator(_source())
    initial = aggregator.get_snapshot()

    assert initial.is_stale() is True
    with pytest.raises(TypeError):
        initial.metrics[MetricKey.ORDERS] = None  # type: ignore[index]

    await aggregator.fetch_all()
    loaded = aggregator.get_snapshot()

    assert loaded is not initial
    assert loaded.is_stale(now=FIXED_NOW) is False
    assert initial.recent_orders == ()


@pytest.mark.asyncio
async def test_out_of_range_timestamp_does_not_fail_the_section():
    aggregator = _aggregator(
        _source(orders=[make_order(1), make_order(2, createdAt="9999-12-31T23:00:00-05:00"), make_order(3)])
    )

    outcome = await aggregator.fetch_all()
    orders = aggregator.get_snapshot().recent_orders

    assert outcome.success is True
    assert [o.id for o in orders] == ["ord-3", "ord-1", "ord-2"]
    assert orders[-1].created_at == EPOCH


@pytest.mark.asyncio
async def test_assistant_stats_split_active_and_inactive():
    aggregator = _aggregator(
        _source(assistants=[{"_id": "a1", "isActive": True}, {"_id": "a2", "isActive": False}])
    )

    await aggregator.fetch_all()
    snapshot = aggregator.get_snapshot()

    assert snapshot.stats.total_assistants == 2
    assert (snapshot.assistant_stats.total, snapshot.assistant_stats.active, snapshot.assistant_stats.inactive) == (
        2,
        1,
        1,
    )


@pytest.mark.asyncio
async def test_assistant_stats_default_until_loaded_and_kept_on_failure():
    source = _source()
    aggregator = _aggregator(source)

    assert aggregator.get_snapshot().assistant_stats.total == 0

    await aggregator.fetch_all()
    source.set("/assistants", UpstreamError("Assistants offline", status_code=503))
    await aggregator.refresh_metric("assistants")
    stats = aggregator.get_snapshot().assistant_stats

    assert (stats.total, stats.active, stats.inactive) == (1, 1, 0)

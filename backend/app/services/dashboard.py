"""Wiring between application settings and the dashboard aggregator."""

from __future__ import annotations

import logging

from app.config import AppSettings, get_settings
from app.core.telemetry import record_refresh
from app.providers.portal_api import PortalAPIClient
from portal_dashboard import DashboardAggregator, DataSource, MetricKey, RefreshOutcome

logger = logging.getLogger(__name__)


def build_aggregator(
    settings: AppSettings | None = None,
    source: DataSource | None = None,
) -> DashboardAggregator:
    """Create an aggregator configured from ``settings``.

    Without an explicit ``source`` a :class:`PortalAPIClient` pointed at the
    configured backend is used.
    """

    settings = settings or get_settings()
    return DashboardAggregator(
        source or PortalAPIClient(),
        resources=settings.endpoints(),
        recent_limit=settings.dashboard_recent_limit,
        orderings={
            MetricKey.ORDERS: settings.orders_upstream_order,
            MetricKey.CUSTOMERS: settings.customers_upstream_order,
        },
        notice_ttl_seconds=settings.dashboard_notice_ttl_seconds or None,
    )


async def initialize_dashboard(aggregator: DashboardAggregator, settings: AppSettings | None = None) -> RefreshOutcome:
    """Run the first full refresh and start auto-refresh when configured."""

    settings = settings or get_settings()
    outcome = await aggregator.fetch_all()
    record_refresh(outcome)
    if outcome.success:
        logger.info("Dashboard initialised")
    else:
        logger.warning("Dashboard initialised with errors: %s", "; ".join(outcome.errors))
    if settings.dashboard_auto_refresh_seconds > 0:
        aggregator.start_auto_refresh(settings.dashboard_auto_refresh_seconds)
    return outcome


__all__ = ["build_aggregator", "initialize_dashboard"]

"""Dashboard snapshot and refresh endpoints."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.dependencies.dashboard import get_aggregator
from app.config import get_settings
from app.core.telemetry import record_refresh
from app.schemas.dashboard import DashboardSnapshotSchema, MetricRefreshSchema, RefreshOutcomeSchema
from portal_dashboard import DashboardAggregator, UnknownMetricError

router = APIRouter()
logger = logging.getLogger(__name__)


def _snapshot_response(aggregator: DashboardAggregator) -> DashboardSnapshotSchema:
    settings = get_settings()
    return DashboardSnapshotSchema.from_snapshot(
        aggregator.get_snapshot(),
        stale_after=timedelta(minutes=settings.dashboard_stale_after_minutes),
    )


@router.get("", response_model=DashboardSnapshotSchema)
async def get_dashboard(aggregator: DashboardAggregator = Depends(get_aggregator)) -> DashboardSnapshotSchema:
    """Return the current dashboard snapshot without refreshing it."""

    return _snapshot_response(aggregator)


@router.post("/refresh", response_model=RefreshOutcomeSchema)
async def refresh_dashboard(aggregator: DashboardAggregator = Depends(get_aggregator)) -> RefreshOutcomeSchema:
    outcome = await aggregator.fetch_all()
    record_refresh(outcome)
    return RefreshOutcomeSchema.from_outcome(outcome)


@router.post("/reports/refresh", response_model=RefreshOutcomeSchema)
async def refresh_reports(aggregator: DashboardAggregator = Depends(get_aggregator)) -> RefreshOutcomeSchema:
    outcome = await aggregator.fetch_reports()
    record_refresh(outcome)
    return RefreshOutcomeSchema.from_outcome(outcome)


@router.post("/retry", response_model=RefreshOutcomeSchema)
async def retry_failed(aggregator: DashboardAggregator = Depends(get_aggregator)) -> RefreshOutcomeSchema:
    outcome = await aggregator.retry_failed()
    return RefreshOutcomeSchema.from_outcome(outcome)


@router.post("/metrics/{metric}/refresh", response_model=MetricRefreshSchema)
async def refresh_metric(
    metric: str,
    aggregator: DashboardAggregator = Depends(get_aggregator),
) -> MetricRefreshSchema:
    try:
        result = await aggregator.refresh_metric(metric)
    except UnknownMetricError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if not result.success:
        logger.info("Refresh of %s failed: %s", result.metric.value, result.error)
    return MetricRefreshSchema.from_result(result)


__all__ = ["router"]

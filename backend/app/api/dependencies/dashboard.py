"""Dependencies giving routes access to the shared dashboard aggregator."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from portal_dashboard import DashboardAggregator


def get_aggregator(request: Request) -> DashboardAggregator:
    aggregator: DashboardAggregator | None = getattr(request.app.state, "dashboard", None)
    if aggregator is None or aggregator.closed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dashboard is not available",
        )
    return aggregator

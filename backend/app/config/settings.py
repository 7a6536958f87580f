"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from portal_dashboard.normalize import UpstreamOrder

DEFAULT_RECENT_LIMIT = 5


class AppSettings(BaseSettings):
    """Configuration options for the portal dashboard service."""

    app_name: str = Field(default="Commerce Portal Dashboard")
    log_level: str = Field(default="INFO")

    portal_api_base_url: str = Field(
        default="http://localhost:5000/api",
        description="Base URL of the portal REST backend.",
    )
    portal_api_token: str | None = Field(
        default=None,
        description="Bearer token forwarded to the portal backend.",
    )
    portal_api_timeout_seconds: float = Field(default=10.0, gt=0)

    stats_endpoint: str = Field(default="/admin-dashboard/stats")
    customers_endpoint: str = Field(default="/customers")
    orders_endpoint: str = Field(default="/orders")
    assistants_endpoint: str = Field(default="/assistants")
    revenue_endpoint: str = Field(default="/reports/revenue")
    performance_endpoint: str = Field(default="/reports/performance")

    dashboard_recent_limit: int = Field(default=DEFAULT_RECENT_LIMIT, ge=1)
    orders_upstream_order: UpstreamOrder = Field(
        default=UpstreamOrder.UNSORTED,
        description="Ordering of the orders endpoint: ascending|descending|unsorted.",
    )
    customers_upstream_order: UpstreamOrder = Field(default=UpstreamOrder.UNSORTED)
    dashboard_notice_ttl_seconds: float = Field(default=3.0, ge=0)
    dashboard_auto_refresh_seconds: float = Field(
        default=0.0,
        ge=0,
        description="Interval for periodic full refreshes; 0 disables auto-refresh.",
    )
    dashboard_stale_after_minutes: int = Field(default=10, ge=1)

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="portal-dashboard")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    def endpoints(self) -> dict[str, str]:
        """Return the endpoint path for every metric, keyed by metric name."""

        return {
            "stats": self.stats_endpoint,
            "customers": self.customers_endpoint,
            "orders": self.orders_endpoint,
            "assistants": self.assistants_endpoint,
            "revenue": self.revenue_endpoint,
            "performance": self.performance_endpoint,
        }

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"portal_api_token"}
        return {k: ("***" if k in hidden else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_RECENT_LIMIT",
    "get_settings",
]

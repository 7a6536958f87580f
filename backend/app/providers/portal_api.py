"""Client for the portal REST backend that feeds the dashboard."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from opentelemetry.propagate import inject

from app.config import get_settings
from portal_dashboard.errors import MalformedPayloadError, UpstreamError

logger = logging.getLogger(__name__)

NETWORK_ERROR_MESSAGE = "Network connection failed. Please check your internet connection."
TIMEOUT_ERROR_MESSAGE = "The portal backend did not respond in time."


class PortalAPIError(UpstreamError):
    """Raised when the portal backend is unreachable or answers with an error."""


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict):
        return ""
    for key in ("message", "detail", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, dict) and isinstance(value.get("message"), str):
            return value["message"]
    return ""


class PortalAPIClient:
    """GET-only JSON client implementing the dashboard ``DataSource`` contract."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        token: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.portal_api_base_url).rstrip("/")
        self._token = token if token is not None else settings.portal_api_token
        self._timeout = timeout_seconds or settings.portal_api_timeout_seconds
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout)

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        # Propagate the current trace so backend spans join the dashboard trace
        inject(headers)
        return headers

    async def fetch(self, resource: str, params: Mapping[str, Any] | None = None) -> Any:
        """Return the decoded JSON body for ``resource``."""

        url = f"{self._base_url}/{resource.lstrip('/')}"
        try:
            response = await self._client.get(
                url,
                params=dict(params) if params else None,
                headers=self._headers(),
            )
        except httpx.TimeoutException as exc:
            raise PortalAPIError(TIMEOUT_ERROR_MESSAGE, kind="network") from exc
        except httpx.HTTPError as exc:
            raise PortalAPIError(NETWORK_ERROR_MESSAGE, kind="network") from exc

        if response.status_code >= 400:
            logger.warning("Portal backend error %s for %s", response.status_code, url)
            raise PortalAPIError(_error_detail(response), status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedPayloadError("Portal backend returned invalid JSON payload") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = ["PortalAPIClient", "PortalAPIError", "NETWORK_ERROR_MESSAGE", "TIMEOUT_ERROR_MESSAGE"]

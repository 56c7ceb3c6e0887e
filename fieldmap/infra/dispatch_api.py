# fieldmap/infra/dispatch_api.py
"""
HTTP client for the backend map / dispatch API.

Every call returns an ``ApiResponse``; HTTP errors, timeouts and network
failures are folded into ``ok=False`` with an ``error`` text instead of
being raised, because most callers run from unattended timers.  When the
server answers with a JSON body carrying ``error`` (or ``message``), that
text is surfaced to the dispatcher as-is.

Uses the shared aiohttp session from ``http_client``.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from urllib.parse import quote

import aiohttp

from fieldmap.core.dispatch.domain import Coordinate
from fieldmap.core.dispatch.ports import ApiResponse
from fieldmap.core.dispatch.schemas import AssignJobRequest, OptimizeRouteRequest
from fieldmap.infra.http_client import get_api_session
from fieldmap.infra.logging_config import get_logger

logger = get_logger(__name__)

__all__ = ["ApiResponse", "DispatchApiClient"]


def _error_text(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        for key in ("error", "message"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return None


class DispatchApiClient:
    """
    Thin async wrapper around the backend endpoints the map screen uses.

    Usage:
        api = DispatchApiClient.from_settings()
        response = await api.get_map_jobs()
        if response.ok:
            ...
    """

    def __init__(
        self,
        base_url: Optional[str],
        token: Optional[str] = None,
        *,
        session_factory: Callable[[], aiohttp.ClientSession] = get_api_session,
    ) -> None:
        self._base_url = (base_url or "").rstrip("/")
        self._token = token
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls) -> "DispatchApiClient":
        from fieldmap.config import settings
        return cls(settings.api_base_url, settings.api_token)

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict[str, Any]] = None,
    ) -> ApiResponse:
        if not self._base_url:
            return ApiResponse(ok=False, error="API base URL is not configured")

        url = f"{self._base_url}{path}"
        try:
            session = self._session_factory()
            async with session.request(method, url, json=json, headers=self._headers()) as resp:
                try:
                    data = await resp.json(content_type=None)
                except ValueError:
                    data = None

                if 200 <= resp.status < 300:
                    logger.debug("%s %s → %d", method, path, resp.status)
                    return ApiResponse(ok=True, status=resp.status, data=data)

                error = _error_text(data) or f"HTTP {resp.status}"
                logger.warning("%s %s → %d: %s", method, path, resp.status, error[:200])
                return ApiResponse(ok=False, status=resp.status, data=data, error=error)

        except TimeoutError:
            logger.warning("%s %s timed out", method, path)
            return ApiResponse(ok=False, error="Request timed out")

        except aiohttp.ClientError as exc:
            logger.warning("%s %s network error: %s", method, path, exc)
            return ApiResponse(ok=False, error=f"Network error: {exc}")

    # ------------------------------------------------------------------
    # Map data
    # ------------------------------------------------------------------

    async def get_map_jobs(self) -> ApiResponse:
        return await self._request("GET", "/api/map/jobs")

    async def get_team_locations(self) -> ApiResponse:
        return await self._request("GET", "/api/team/locations")

    async def get_geofence_alerts(self) -> ApiResponse:
        return await self._request("GET", "/api/map/geofence-alerts")

    async def mark_alert_read(self, alert_id: str) -> ApiResponse:
        return await self._request("POST", f"/api/map/geofence-alerts/{quote(alert_id, safe='')}/read")

    async def get_clients(self) -> ApiResponse:
        return await self._request("GET", "/api/clients")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def assign_job(self, job_id: str, assignee_user_id: str) -> ApiResponse:
        body = AssignJobRequest(assigned_to=assignee_user_id).model_dump(by_alias=True)
        return await self._request("POST", f"/api/jobs/{quote(job_id, safe='')}/assign", json=body)

    async def optimize_route(self, job_ids: list[str], origin: Optional[Coordinate]) -> ApiResponse:
        request = OptimizeRouteRequest(
            job_ids=job_ids,
            user_latitude=origin.latitude if origin else None,
            user_longitude=origin.longitude if origin else None,
        )
        return await self._request(
            "POST", "/api/routes/optimize",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )

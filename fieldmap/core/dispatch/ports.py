from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from fieldmap.core.dispatch.domain import Coordinate


@dataclass
class ApiResponse:
    """
    Outcome of one backend call.

    Clients never raise for HTTP or transport failures: ``ok`` is False and
    ``error`` carries the server's message (or the transport error text).
    """
    ok: bool
    status: int = 0
    data: Any = None
    error: Optional[str] = None


# ============================================================================
# ASYNC PROTOCOLS
# ============================================================================

class DispatchApi(Protocol):
    async def get_map_jobs(self) -> ApiResponse: ...
    async def get_team_locations(self) -> ApiResponse: ...
    async def get_geofence_alerts(self) -> ApiResponse: ...
    async def mark_alert_read(self, alert_id: str) -> ApiResponse: ...
    async def get_clients(self) -> ApiResponse: ...
    async def assign_job(self, job_id: str, assignee_user_id: str) -> ApiResponse: ...

    async def optimize_route(self, job_ids: list[str], origin: Optional[Coordinate]) -> ApiResponse:
        """
        Response ``data`` is expected to carry ``optimizedJobIds``;
        the ids are not trusted to match the request.
        """
        ...


class LocationProvider(Protocol):
    async def request_permission(self) -> bool:
        """True when the dispatcher granted foreground location access."""
        ...

    async def current_position(self) -> Coordinate: ...


UrlOpener = Callable[[str], Any]

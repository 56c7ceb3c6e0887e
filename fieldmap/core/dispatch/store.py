"""
EntityStore: the session-owned snapshot of jobs, team, clients and alerts.

Every ``refresh_*`` call fetches a full snapshot and replaces the matching
collection wholesale.  Refreshes run from user actions and from unattended
timers alike, so they never raise: an error-shaped or non-list response
becomes an empty collection plus a log line.  Individual rows that fail
validation are skipped; the rest of the snapshot is kept.

Overlapping refreshes are not cancelled: whichever resolves last wins,
which is fine because each one carries a complete snapshot.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError

from fieldmap.core.dispatch.alerts import AlertCenter
from fieldmap.core.dispatch.domain import (
    ActivityStatus,
    Client,
    GeofenceAlert,
    Job,
    LastLocation,
    TeamMember,
)
from fieldmap.core.dispatch.ports import ApiResponse, DispatchApi
from fieldmap.core.dispatch.schemas import ClientRow, GeofenceAlertRow, JobRow, TeamLocationRow
from fieldmap.infra.logging_config import get_logger, mask_coordinates
from fieldmap.infra.metrics import DispatchMetrics, Timer

logger = get_logger(__name__)

RowT = TypeVar("RowT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Row → domain transforms
# ---------------------------------------------------------------------------

def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_job(row: JobRow) -> Job:
    return Job(
        id=row.id,
        title=row.title,
        status=row.status,
        latitude=row.latitude,
        longitude=row.longitude,
        address=row.address,
        client_id=row.client_id,
        client_name=row.client_name,
        assigned_to=row.assigned_to,
    )


def _split_name(row: TeamLocationRow) -> tuple[str, str]:
    if row.first_name is not None or row.last_name is not None:
        return row.first_name or "", row.last_name or ""
    parts = (row.name or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _activity_status(row: TeamLocationRow) -> ActivityStatus:
    """Explicit server status wins; otherwise working if on a job, else online."""
    if row.activity_status:
        try:
            return ActivityStatus(row.activity_status)
        except ValueError:
            logger.debug(
                "Unknown activity status %r for member %s, using default",
                row.activity_status, row.id,
                extra={"worker_id": row.id},
            )
    # NOTE: a member on a job reads as working even if connectivity says offline
    return ActivityStatus.WORKING if row.current_job_id else ActivityStatus.ONLINE


def _row_to_team_member(row: TeamLocationRow, now: datetime) -> TeamMember:
    first_name, last_name = _split_name(row)

    last_location = None
    if row.latitude is not None and row.longitude is not None:
        last_location = LastLocation(
            latitude=row.latitude,
            longitude=row.longitude,
            timestamp=_as_utc(row.last_updated) if row.last_updated else now,
            speed=row.speed,
            battery=row.battery_level,
        )

    return TeamMember(
        id=row.id,
        user_id=row.id,
        first_name=first_name,
        last_name=last_name,
        role=row.role or "worker",
        theme_color=row.theme_color or None,
        last_location=last_location,
        activity_status=_activity_status(row),
        current_job_id=row.current_job_id,
        current_job_title=row.current_job_title,
    )


def _row_to_alert(row: GeofenceAlertRow) -> GeofenceAlert:
    return GeofenceAlert(
        id=row.id,
        user_id=row.user_id,
        job_id=row.job_id,
        user_name=row.user_name,
        job_title=row.job_title,
        alert_type=row.alert_type,
        created_at=_as_utc(row.created_at),
        is_read=row.is_read,
        address=row.address,
        user_avatar=row.user_avatar,
    )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class EntityStore:
    """
    Explicitly owned store for one dispatch session.

    Constructed at session start, cleared on teardown.  Derived values
    (counts, eligible markers) are computed by readers, never cached here.
    """

    def __init__(
        self,
        api: DispatchApi,
        alert_center: Optional[AlertCenter] = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._api = api
        self.alert_center = alert_center or AlertCenter(api)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self.jobs: list[Job] = []
        self.team_members: list[TeamMember] = []
        self.clients: list[Client] = []
        self.last_location_update: Optional[datetime] = None
        self.jobs_loading = False

    @property
    def geofence_alerts(self) -> list[GeofenceAlert]:
        return self.alert_center.alerts

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def _fetch_rows(
        self,
        collection: str,
        call: Callable[[], Awaitable[ApiResponse]],
    ) -> Optional[list]:
        """Raw row list, or None when the response is unusable (already logged)."""
        try:
            with Timer("dispatch_refresh_seconds", collection=collection):
                response = await call()
        except Exception as exc:
            logger.warning("%s refresh raised: %s", collection, exc, exc_info=True)
            DispatchMetrics.refresh(collection, "error")
            return None

        if not response.ok:
            logger.warning(
                "%s API error (status=%s): %s", collection, response.status, response.error,
            )
            DispatchMetrics.refresh(collection, "api_error")
            return None

        if not isinstance(response.data, list):
            logger.warning(
                "%s response is not a list: %s", collection, type(response.data).__name__,
            )
            DispatchMetrics.refresh(collection, "malformed")
            return None

        DispatchMetrics.refresh(collection, "ok")
        return response.data

    @staticmethod
    def _parse_rows(collection: str, rows: list, model: type[RowT]) -> list[RowT]:
        parsed: list[RowT] = []
        for index, raw in enumerate(rows):
            try:
                parsed.append(model.model_validate(raw))
            except PydanticValidationError as exc:
                logger.warning(
                    "Skipping malformed %s row #%d: %d validation error(s)",
                    collection, index, exc.error_count(),
                )
        return parsed

    # ------------------------------------------------------------------
    # Refreshes
    # ------------------------------------------------------------------

    async def refresh_jobs(self) -> list[Job]:
        self.jobs_loading = True
        try:
            rows = await self._fetch_rows("jobs", self._api.get_map_jobs)
            if rows is None:
                self.jobs = []
                return self.jobs

            self.jobs = [_row_to_job(r) for r in self._parse_rows("jobs", rows, JobRow)]
            logger.info(
                "Loaded %d jobs (%d map-eligible)",
                len(self.jobs), sum(1 for j in self.jobs if j.is_map_eligible),
            )
            return self.jobs
        finally:
            self.jobs_loading = False

    async def refresh_team_members(self) -> list[TeamMember]:
        rows = await self._fetch_rows("team", self._api.get_team_locations)
        if rows is None:
            self.team_members = []
            return self.team_members

        now = self._clock()
        members = [
            _row_to_team_member(r, now)
            for r in self._parse_rows("team", rows, TeamLocationRow)
        ]
        for member in members:
            if member.last_location is None:
                logger.debug(
                    "Team member %s has no location (list only)", member.id,
                    extra={"worker_id": member.id},
                )
            else:
                loc = member.last_location
                logger.debug(
                    "Team member %s at (%s)", member.id,
                    mask_coordinates(loc.latitude, loc.longitude),
                    extra={"worker_id": member.id},
                )

        self.team_members = members
        self.last_location_update = now
        return self.team_members

    async def refresh_geofence_alerts(self) -> list[GeofenceAlert]:
        rows = await self._fetch_rows("geofence_alerts", self._api.get_geofence_alerts)
        if rows is None:
            self.alert_center.ingest([])
            return []

        alerts = [
            _row_to_alert(r)
            for r in self._parse_rows("geofence_alerts", rows, GeofenceAlertRow)
        ]
        self.alert_center.ingest(alerts)
        return self.alert_center.alerts

    async def refresh_clients(self) -> list[Client]:
        rows = await self._fetch_rows("clients", self._api.get_clients)
        if rows is None:
            self.clients = []
            return self.clients

        self.clients = [
            Client(id=r.id, name=r.name)
            for r in self._parse_rows("clients", rows, ClientRow)
        ]
        return self.clients

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def job_by_id(self, job_id: str) -> Optional[Job]:
        return next((j for j in self.jobs if j.id == job_id), None)

    def member_by_id(self, member_id: str) -> Optional[TeamMember]:
        return next((m for m in self.team_members if m.id == member_id), None)

    def clear(self) -> None:
        """Drop every collection (logout)."""
        self.jobs = []
        self.team_members = []
        self.clients = []
        self.last_location_update = None
        self.alert_center.clear()

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


# ============================================================================
# ENUMS
# ============================================================================

class JobStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    INVOICED = "invoiced"


class ActivityStatus(str, Enum):
    ONLINE = "online"
    DRIVING = "driving"
    WORKING = "working"
    OFFLINE = "offline"


class AlertType(str, Enum):
    ARRIVAL = "arrival"
    DEPARTURE = "departure"
    LATE = "late"
    SPEED_WARNING = "speed_warning"


STATUS_FILTER_ALL = "all"

STATUS_LABELS: dict[str, str] = {
    JobStatus.PENDING.value: "Pending",
    JobStatus.SCHEDULED.value: "Scheduled",
    JobStatus.IN_PROGRESS.value: "In Progress",
    JobStatus.DONE.value: "Done",
    JobStatus.INVOICED.value: "Invoiced",
}

ACTIVITY_LABELS: dict[str, str] = {
    ActivityStatus.ONLINE.value: "Online",
    ActivityStatus.DRIVING.value: "Driving",
    ActivityStatus.WORKING.value: "Working",
    ActivityStatus.OFFLINE.value: "Offline",
}


# ============================================================================
# GEOMETRY
# ============================================================================

@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def as_query(self) -> str:
        """``"lat,lng"`` as used by turn-by-turn URL schemes."""
        return f"{self.latitude},{self.longitude}"


# ============================================================================
# ENTITIES
# ============================================================================

@dataclass
class Job:
    """
    A unit of field work as shown on the map.

    Only map-eligible when both coordinates are present; the backend
    geocodes addresses, so jobs with unresolvable addresses arrive
    without coordinates.
    """
    id: str
    title: str
    status: str = JobStatus.PENDING.value
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    assigned_to: Optional[str] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        if self.latitude is None or self.longitude is None:
            return None
        return Coordinate(self.latitude, self.longitude)

    @property
    def is_map_eligible(self) -> bool:
        return self.coordinate is not None

    @property
    def status_label(self) -> str:
        return STATUS_LABELS.get(self.status, self.status)


@dataclass
class LastLocation:
    latitude: float
    longitude: float
    timestamp: datetime
    speed: Optional[float] = None
    battery: Optional[float] = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)


@dataclass
class TeamMember:
    """A mobile worker. Never rendered as a marker without ``last_location``."""
    id: str
    user_id: str
    first_name: str = ""
    last_name: str = ""
    role: str = "worker"
    theme_color: Optional[str] = None
    last_location: Optional[LastLocation] = None
    activity_status: ActivityStatus = ActivityStatus.ONLINE
    current_job_id: Optional[str] = None
    current_job_title: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_map_eligible(self) -> bool:
        return self.last_location is not None

    @property
    def is_active(self) -> bool:
        return self.activity_status != ActivityStatus.OFFLINE

    @property
    def activity_label(self) -> str:
        return ACTIVITY_LABELS[self.activity_status.value]


@dataclass
class GeofenceAlert:
    """Proximity / lateness event for a supervised worker. Read-state only changes client-side."""
    id: str
    user_id: str
    job_id: str
    user_name: str
    job_title: str
    alert_type: AlertType
    created_at: datetime
    is_read: bool = False
    address: Optional[str] = None
    user_avatar: Optional[str] = None

    @property
    def initials(self) -> str:
        parts = [p for p in self.user_name.split(" ") if p]
        return "".join(p[0] for p in parts).upper()[:2]


@dataclass
class Client:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Capabilities:
    """What the signed-in dispatcher is allowed to do on the map."""
    can_view_team: bool = False
    can_assign_jobs: bool = False

    @classmethod
    def for_role(cls, *, is_owner: bool = False, is_manager: bool = False,
                 can_access_map: bool = False) -> "Capabilities":
        return cls(
            can_view_team=is_owner or is_manager or can_access_map,
            can_assign_jobs=is_owner or is_manager,
        )


@dataclass(frozen=True)
class RouteStop:
    """A route entry numbered for display; numbers are never stored."""
    number: int
    job: Job


@dataclass
class MapFilters:
    """Layer toggles and status filter chosen by the dispatcher."""
    show_jobs: bool = True
    show_team_members: bool = True
    status_filter: str = STATUS_FILTER_ALL
    live_tracking: bool = True
    header_collapsed: bool = False

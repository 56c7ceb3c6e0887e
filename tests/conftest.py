# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fieldmap.core.dispatch.domain import Job, LastLocation, TeamMember  # noqa: E402
from fieldmap.core.dispatch.ports import ApiResponse  # noqa: E402
from fieldmap.infra.metrics import get_metrics_collector  # noqa: E402


def ok(data=None, status: int = 200) -> ApiResponse:
    return ApiResponse(ok=True, status=status, data=data)


def failed(error: str = "Internal error", status: int = 500) -> ApiResponse:
    return ApiResponse(ok=False, status=status, error=error)


def make_api(**responses) -> MagicMock:
    """
    Fake dispatch API with every call as an AsyncMock.

    Pass ``name=ApiResponse(...)`` (or an exception / side_effect list) to
    override a single call; everything else answers with an empty success.
    """
    defaults = {
        "get_map_jobs": ok([]),
        "get_team_locations": ok([]),
        "get_geofence_alerts": ok([]),
        "get_clients": ok([]),
        "mark_alert_read": ok({}),
        "assign_job": ok({}),
        "optimize_route": ok({"optimizedJobIds": []}),
    }
    api = MagicMock()
    for name, default in defaults.items():
        value = responses.get(name, default)
        if isinstance(value, (BaseException, list)):
            setattr(api, name, AsyncMock(side_effect=value))
        else:
            setattr(api, name, AsyncMock(return_value=value))
    return api


def make_job(job_id: str = "j1", *, lat=-16.92, lng=145.77, status="pending",
             title: str | None = None, address: str | None = None) -> Job:
    return Job(
        id=job_id,
        title=title or f"Job {job_id}",
        status=status,
        latitude=lat,
        longitude=lng,
        address=address,
    )


def make_member(member_id: str = "u1", *, lat=-16.91, lng=145.76,
                first_name: str = "Alex", last_name: str = "Doe",
                located: bool = True) -> TeamMember:
    location = None
    if located:
        location = LastLocation(
            latitude=lat,
            longitude=lng,
            timestamp=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
        )
    return TeamMember(
        id=member_id,
        user_id=member_id,
        first_name=first_name,
        last_name=last_name,
        last_location=location,
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are process-global; isolate counters per test."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()


@pytest.fixture
def notices():
    """Notices collected by the ``notify`` fixture."""
    return []


@pytest.fixture
def notify(notices):
    return notices.append


@pytest.fixture
def sample_job_rows():
    """``GET /api/map/jobs`` payload: one located job, one without coordinates"""
    return [
        {"id": "j1", "title": "Fix leak", "status": "pending", "latitude": -16.92, "longitude": 145.77,
         "address": "1 Esplanade, Cairns", "clientId": "c1", "clientName": "Reef Hotel"},
        {"id": "j2", "title": "Quote", "status": "scheduled", "latitude": None, "longitude": None,
         "address": "Unknown Rd"},
    ]


@pytest.fixture
def sample_team_rows():
    """``GET /api/team/locations`` payload"""
    return [
        {"id": "u1", "name": "Sam Lee", "role": "worker", "latitude": -16.91, "longitude": 145.76,
         "lastUpdated": "2024-05-01T09:00:00Z", "batteryLevel": 80, "activityStatus": "driving"},
        {"id": "u2", "name": "Kim Park", "latitude": None, "longitude": None,
         "currentJobId": "j1", "currentJobTitle": "Fix leak"},
    ]


@pytest.fixture
def sample_alert_rows():
    """``GET /api/map/geofence-alerts`` payload"""
    return [
        {"id": "a1", "userId": "u1", "jobId": "j1", "userName": "Sam Lee", "jobTitle": "Fix leak",
         "alertType": "arrival", "createdAt": "2024-05-01T09:00:00Z", "isRead": False},
        {"id": "a2", "userId": "u2", "jobId": "j2", "userName": "Kim Park", "jobTitle": "Quote",
         "alertType": "late", "createdAt": "2024-05-01T08:00:00Z", "isRead": True},
    ]

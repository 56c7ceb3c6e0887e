"""
Pydantic request/response models for the backend map API.

These live in the core (not next to the HTTP client) so the store can
validate raw rows no matter which client produced them.  The backend
speaks camelCase; Python attributes stay snake_case.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from fieldmap.core.dispatch.domain import AlertType


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


def _finite_or_none(v: Any) -> Any:
    """Blank strings mean 'no coordinate'; zero is a real coordinate."""
    if v is None:
        return None
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _drop_non_finite(v: float | None) -> float | None:
    if v is None or not math.isfinite(v):
        return None
    return v


# ---------------------------------------------------------------------------
# Rows (responses)
# ---------------------------------------------------------------------------

class JobRow(_WireModel):
    """One entry of ``GET /api/map/jobs`` (addresses already geocoded server-side)."""

    id: str
    title: str = ""
    status: str = "pending"
    address: str | None = None
    client_id: str | None = None
    client_name: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    assigned_to: str | None = None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def blank_coordinate(cls, v: Any) -> Any:
        return _finite_or_none(v)

    @field_validator("latitude", "longitude")
    @classmethod
    def finite_coordinate(cls, v: float | None) -> float | None:
        return _drop_non_finite(v)


class TeamLocationRow(_WireModel):
    """
    One entry of ``GET /api/team/locations``.

    The backend sends a single ``name``; some deployments also send
    ``firstName``/``lastName``.  ``activityStatus`` is optional.
    """

    id: str
    name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    role: str | None = None
    theme_color: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    last_updated: datetime | None = None
    speed: float | None = None
    battery_level: float | None = None
    current_job_id: str | None = None
    current_job_title: str | None = None
    activity_status: str | None = None

    @field_validator("latitude", "longitude", "speed", "battery_level", mode="before")
    @classmethod
    def blank_number(cls, v: Any) -> Any:
        return _finite_or_none(v)

    @field_validator("latitude", "longitude", "speed", "battery_level")
    @classmethod
    def finite_number(cls, v: float | None) -> float | None:
        return _drop_non_finite(v)

    @field_validator("last_updated", mode="before")
    @classmethod
    def blank_timestamp(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class GeofenceAlertRow(_WireModel):
    """One entry of ``GET /api/map/geofence-alerts``."""

    id: str
    user_id: str
    job_id: str
    user_name: str = ""
    user_avatar: str | None = None
    job_title: str = ""
    alert_type: AlertType
    address: str | None = None
    created_at: datetime
    is_read: bool = False


class ClientRow(_WireModel):
    id: str
    name: str = ""


# ---------------------------------------------------------------------------
# Requests / command responses
# ---------------------------------------------------------------------------

class AssignJobRequest(_WireModel):
    """Body of ``POST /api/jobs/{id}/assign``."""

    assigned_to: str


class OptimizeRouteRequest(_WireModel):
    """Body of ``POST /api/routes/optimize``; origin omitted when unknown."""

    job_ids: list[str]
    user_latitude: float | None = None
    user_longitude: float | None = None


class OptimizeRouteResponse(_WireModel):
    optimized_job_ids: list[str] | None = None

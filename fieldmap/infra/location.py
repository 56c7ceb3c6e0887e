# fieldmap/infra/location.py
"""
Dispatcher position for hosts without device GPS.

A configured latitude/longitude pair stands in for the device position;
when none is configured the permission request is refused, which only
disables "center on me" and leaves optimization without an origin.
"""
from __future__ import annotations

from typing import Optional

from fieldmap.core.dispatch.domain import Coordinate
from fieldmap.core.dispatch.errors import PermissionDeniedError
from fieldmap.infra.logging_config import get_logger, mask_coordinates

logger = get_logger(__name__)


class FixedLocationProvider:
    def __init__(self, latitude: Optional[float] = None, longitude: Optional[float] = None):
        if latitude is None or longitude is None:
            self._coordinate = None
        else:
            self._coordinate = Coordinate(latitude, longitude)

    @classmethod
    def from_settings(cls) -> "FixedLocationProvider":
        from fieldmap.config import settings
        return cls(settings.dispatcher_latitude, settings.dispatcher_longitude)

    async def request_permission(self) -> bool:
        granted = self._coordinate is not None
        logger.debug("Location permission %s", "granted" if granted else "denied")
        return granted

    async def current_position(self) -> Coordinate:
        if self._coordinate is None:
            raise PermissionDeniedError("No dispatcher location is configured.")
        logger.debug(
            "Dispatcher position (%s)",
            mask_coordinates(self._coordinate.latitude, self._coordinate.longitude),
        )
        return self._coordinate

"""
Turn-by-turn URL builders.

Multi-stop routes always use the Google Maps directions scheme (Apple Maps
has no waypoint support); single-destination directions honor the
dispatcher's maps preference.
"""
from __future__ import annotations

from typing import Literal, Optional, Sequence
from urllib.parse import quote

from fieldmap.core.dispatch.domain import Coordinate

GOOGLE_DIRECTIONS_URL = "https://www.google.com/maps/dir/?api=1"
APPLE_MAPS_URL = "https://maps.apple.com/"

MapsPreference = Literal["google", "apple"]


def build_multi_stop_url(stops: Sequence[Coordinate]) -> Optional[str]:
    """
    One driving URL through every stop in order.

    The last stop is the destination, the rest are ``|``-joined waypoints.
    Returns None when there are no stops.
    """
    if not stops:
        return None
    destination = stops[-1].as_query()
    url = f"{GOOGLE_DIRECTIONS_URL}&destination={destination}"
    waypoints = "|".join(s.as_query() for s in stops[:-1])
    if waypoints:
        url += f"&waypoints={quote(waypoints, safe='')}"
    return url + "&travelmode=driving"


def build_directions_url(
    coordinate: Optional[Coordinate] = None,
    address: Optional[str] = None,
    preference: MapsPreference = "google",
) -> Optional[str]:
    """Directions to a single job: coordinates preferred, address as fallback."""
    if coordinate is not None:
        target = coordinate.as_query()
    elif address and address.strip():
        target = quote(address.strip(), safe="")
    else:
        return None

    if preference == "apple":
        return f"{APPLE_MAPS_URL}?daddr={target}&dirflg=d"
    return f"{GOOGLE_DIRECTIONS_URL}&destination={target}&travelmode=driving"

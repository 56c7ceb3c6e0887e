"""
MapViewportController: keeps the visible region in step with the markers.

Changes to the visible marker sets are debounced: a burst of state
changes (filter switch followed by a refresh, say) produces one fit after
the burst settles.  The fit itself is computed when the timer fires, from
the coordinates eligible at that moment.  A manual "fit to markers"
bypasses the debounce.

Automatic fits are skipped once the user has panned or zoomed, until the
next explicit layer/filter change, and while the host says they are
blocked (an armed worker, for instance).
"""
from __future__ import annotations

import asyncio
from typing import Callable, Hashable, Optional, Sequence

from fieldmap.core.dispatch.domain import Coordinate
from fieldmap.core.dispatch.geo import (
    DEFAULT_MIN_DELTA,
    EdgePadding,
    Region,
    ViewportSize,
    compute_fit_region,
    region_around,
    zoom_to_delta,
)
from fieldmap.infra.logging_config import get_logger

logger = get_logger(__name__)


def overlay_padding(
    *,
    header_collapsed: bool,
    top_expanded: float = 200.0,
    top_collapsed: float = 100.0,
    side: float = 60.0,
    bottom_nav_height: float = 80.0,
    bottom_extra: float = 100.0,
) -> EdgePadding:
    """Fit padding that keeps markers clear of the header and bottom navigation."""
    return EdgePadding(
        top=top_collapsed if header_collapsed else top_expanded,
        right=side,
        bottom=bottom_nav_height + bottom_extra,
        left=side,
    )


class MapViewportController:
    def __init__(
        self,
        *,
        eligible_coordinates: Callable[[], Sequence[Coordinate]],
        padding: Callable[[], EdgePadding],
        viewport: ViewportSize = ViewportSize(),
        debounce_seconds: float = 0.3,
        min_delta: float = DEFAULT_MIN_DELTA,
        initial_region: Optional[Region] = None,
        on_region: Optional[Callable[[Region], None]] = None,
        auto_fit_blocked: Optional[Callable[[], bool]] = None,
    ) -> None:
        self._eligible_coordinates = eligible_coordinates
        self._padding = padding
        self._viewport = viewport
        self._debounce = debounce_seconds
        self._min_delta = min_delta
        self._on_region = on_region
        self._auto_fit_blocked = auto_fit_blocked

        self.region: Optional[Region] = initial_region
        self._handle: Optional[asyncio.TimerHandle] = None
        self._last_key: Optional[Hashable] = None
        self._user_interacted = False

    # ------------------------------------------------------------------
    # Change tracking
    # ------------------------------------------------------------------

    def notify_changed(self, key: Hashable) -> bool:
        """
        Report the current visible-state key.

        Schedules a debounced fit only when the key differs from the last
        one reported.  Returns True when a fit was scheduled.
        """
        if key == self._last_key:
            return False
        self._last_key = key
        self.schedule_fit()
        return True

    def schedule_fit(self) -> None:
        """(Re)arm the debounce timer; requires a running event loop."""
        self.cancel_pending()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._debounce, self._run_scheduled_fit)

    def cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def has_pending_fit(self) -> bool:
        return self._handle is not None

    def _run_scheduled_fit(self) -> None:
        self._handle = None
        if self._user_interacted:
            logger.debug("Auto-fit skipped: user moved the map")
            return
        if self._auto_fit_blocked is not None and self._auto_fit_blocked():
            logger.debug("Auto-fit skipped: blocked by host state")
            return
        self._fit()

    # ------------------------------------------------------------------
    # User interaction
    # ------------------------------------------------------------------

    def mark_user_interaction(self) -> None:
        """The user panned or zoomed; stop auto-fitting until the next filter change."""
        self._user_interacted = True

    def reset_user_interaction(self) -> None:
        self._user_interacted = False

    @property
    def user_interacted(self) -> bool:
        return self._user_interacted

    # ------------------------------------------------------------------
    # Region changes
    # ------------------------------------------------------------------

    def fit_to_markers(self) -> Optional[Region]:
        """Fit now, skipping the debounce. Leaves the viewport alone when nothing is eligible."""
        self.cancel_pending()
        return self._fit()

    def _fit(self) -> Optional[Region]:
        region = compute_fit_region(
            list(self._eligible_coordinates()),
            self._padding(),
            self._viewport,
            self._min_delta,
        )
        if region is None:
            logger.debug("Fit skipped: no eligible coordinates")
            return None
        self.set_region(region)
        return region

    def set_region(self, region: Region) -> None:
        self.region = region
        if self._on_region is not None:
            self._on_region(region)

    def focus(self, coordinate: Coordinate, zoom: float) -> Region:
        """Center on one point at a given zoom level."""
        region = region_around(coordinate, zoom_to_delta(zoom))
        self.set_region(region)
        return region

    def center_on(self, coordinate: Coordinate, delta: float) -> Region:
        region = region_around(coordinate, delta)
        self.set_region(region)
        return region

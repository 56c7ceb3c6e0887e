"""
DispatchEngine: one dispatcher's live map session.

Owns the store, alert center, selection machine, route builder, viewport
controller and pollers, and ties them together:

- refreshes feed the store; visible-set changes feed the viewport
- a confirmed assignment triggers a jobs refresh
- pollers run only while their gating conditions hold and are cancelled
  on ``close()``

Derived views (filtered jobs, eligible markers, counts) are computed on
read from the store; nothing derived is cached.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine, Optional, TypeVar

from fieldmap.config import Settings
from fieldmap.core.dispatch.domain import (
    STATUS_FILTER_ALL,
    Capabilities,
    Coordinate,
    Job,
    JobStatus,
    MapFilters,
    TeamMember,
)
from fieldmap.core.dispatch.errors import ValidationError
from fieldmap.core.dispatch.geo import EdgePadding, Region, ViewportSize
from fieldmap.core.dispatch.navigation import build_directions_url
from fieldmap.core.dispatch.notices import Notifier, log_notifier
from fieldmap.core.dispatch.polling import PollingScheduler, PollingTask
from fieldmap.core.dispatch.ports import DispatchApi, LocationProvider, UrlOpener
from fieldmap.core.dispatch.route_builder import RouteBuilder
from fieldmap.core.dispatch.selection import (
    JobTapOutcome,
    SelectionAssignmentMachine,
    SelectionState,
    WorkerSelected,
)
from fieldmap.core.dispatch.store import EntityStore
from fieldmap.core.dispatch.viewport import MapViewportController, overlay_padding
from fieldmap.infra.logging_config import LogContext, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

TEAM_POLLER = "team_locations"
ALERT_POLLER = "geofence_alerts"

_VALID_STATUS_FILTERS = {STATUS_FILTER_ALL} | {s.value for s in JobStatus}


class DispatchEngine:
    """
    Usage:
        async with DispatchEngine(api, capabilities=caps) as engine:
            await engine.pull_to_refresh()
            engine.tap_worker(member)
            engine.tap_job(job)
            await engine.confirm_assignment()
    """

    def __init__(
        self,
        api: DispatchApi,
        *,
        capabilities: Capabilities,
        settings: Optional[Settings] = None,
        location: Optional[LocationProvider] = None,
        notify: Notifier = log_notifier,
        open_url: Optional[UrlOpener] = None,
        on_region: Optional[Callable[[Region], None]] = None,
        on_open_job: Optional[Callable[[str], Any]] = None,
        session_id: Optional[str] = None,
    ) -> None:
        if settings is None:
            from fieldmap.config import settings as default_settings
            settings = default_settings

        self._settings = settings
        self._location = location
        self._open_url = open_url
        self._notify = notify
        self._on_open_job = on_open_job
        self._log = LogContext(logger, session_id=session_id)

        self.capabilities = capabilities
        self.filters = MapFilters()

        self.store = EntityStore(api)
        self.alerts = self.store.alert_center
        self.selection = SelectionAssignmentMachine(
            api,
            can_assign=capabilities.can_assign_jobs,
            on_assigned=self.refresh_jobs,
            notify=notify,
        )
        self.route = RouteBuilder(api, notify=notify, open_url=open_url)
        self.viewport = MapViewportController(
            eligible_coordinates=self.eligible_coordinates,
            padding=self.fit_padding,
            viewport=ViewportSize(settings.viewport_width, settings.viewport_height),
            debounce_seconds=settings.viewport_fit_debounce_seconds,
            min_delta=settings.min_fit_delta,
            initial_region=Region(
                settings.default_region_latitude,
                settings.default_region_longitude,
                settings.default_region_delta,
                settings.default_region_delta,
            ),
            on_region=on_region,
            auto_fit_blocked=lambda: self.selection.selected_worker is not None,
        )

        self.scheduler = PollingScheduler()
        self.scheduler.register(PollingTask(
            TEAM_POLLER, self.refresh_team_members,
            interval=settings.team_location_poll_interval,
        ))
        self.scheduler.register(PollingTask(
            ALERT_POLLER, self.store.refresh_geofence_alerts,
            interval=settings.geofence_alert_poll_interval,
        ))

        self.user_location: Optional[Coordinate] = None
        self.is_refreshing = False
        self.selected_job: Optional[Job] = None
        self._location_task: Optional[asyncio.Task] = None
        self._inflight: set[asyncio.Task] = set()
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Kick off location lookup, load jobs, and start the gated pollers."""
        if self._started:
            return
        self._started = True
        self._log.info("Dispatch session starting")

        # One-shot; start() does not wait for it
        self._location_task = asyncio.create_task(self._acquire_location(), name="dispatcher_location")

        await self.refresh_jobs()
        await self._apply_gates()

    async def close(self) -> None:
        """Tear the session down: pollers, debounce timer, background writes, state."""
        if self._closed:
            return
        self._closed = True

        await self.scheduler.shutdown()
        self.viewport.cancel_pending()

        if self._location_task is not None and not self._location_task.done():
            self._location_task.cancel()
            try:
                await self._location_task
            except asyncio.CancelledError:
                pass

        # Commits and pulls still awaiting the network must not repopulate the store
        pending = [t for t in self._inflight if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._inflight.clear()

        await self.alerts.drain()
        self.selection.clear_selection()
        self.selected_job = None
        self.store.clear()
        self._log.info("Dispatch session closed")

    async def __aenter__(self) -> "DispatchEngine":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _acquire_location(self) -> None:
        if self._location is None:
            return
        try:
            if not await self._location.request_permission():
                self._log.info("Location permission denied; center-on-me disabled")
                return
            self.user_location = await self._location.current_position()
        except Exception as exc:
            self._log.info(f"Location unavailable: {exc}")

    async def _run_tracked(self, coro: Coroutine[Any, Any, T], *, on_close: T) -> T:
        """
        Run ``coro`` as a task that ``close()`` can cancel.

        Returns ``on_close`` when the task was cancelled by session teardown;
        cancellation of the caller itself still propagates.
        """
        if self._closed:
            coro.close()
            return on_close
        task = asyncio.create_task(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if self._closed and task.cancelled() and (current is None or current.cancelling() == 0):
                return on_close
            raise

    @property
    def location_available(self) -> bool:
        return self.user_location is not None

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    @property
    def team_layer_enabled(self) -> bool:
        return self.filters.show_team_members and self.capabilities.can_view_team

    @property
    def team_polling_gate(self) -> bool:
        return self.team_layer_enabled and self.filters.live_tracking

    @property
    def alert_polling_gate(self) -> bool:
        return self.capabilities.can_view_team

    async def _apply_gates(self) -> None:
        if self._closed:
            return
        await self.scheduler.set_gate(TEAM_POLLER, self.team_polling_gate)
        await self.scheduler.set_gate(ALERT_POLLER, self.alert_polling_gate)

    # ------------------------------------------------------------------
    # Refreshes
    # ------------------------------------------------------------------

    async def refresh_jobs(self) -> list[Job]:
        if self._closed:
            return []
        jobs = await self.store.refresh_jobs()
        self._visible_state_changed()
        return jobs

    async def refresh_team_members(self) -> list[TeamMember]:
        if self._closed:
            return []
        members = await self.store.refresh_team_members()
        self._visible_state_changed()
        return members

    async def pull_to_refresh(self) -> bool:
        """
        Refresh everything applicable concurrently.

        ``is_refreshing`` stays True until every refresh has settled.
        Returns False if a pull was already running or the session closed
        before it finished.
        """
        if self.is_refreshing or self._closed:
            return False

        self.is_refreshing = True
        try:
            return await self._run_tracked(self._refresh_all(), on_close=False)
        finally:
            self.is_refreshing = False

    async def _refresh_all(self) -> bool:
        calls = [self.refresh_jobs(), self.store.refresh_clients()]
        if self.team_layer_enabled:
            calls.append(self.refresh_team_members())
            calls.append(self.store.refresh_geofence_alerts())

        results = await asyncio.gather(*calls, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self._log.warning(f"Refresh failed during pull-to-refresh: {result}")
        return True

    # ------------------------------------------------------------------
    # Filters and toggles
    # ------------------------------------------------------------------

    async def set_show_jobs(self, enabled: bool) -> None:
        self.filters.show_jobs = enabled
        self.viewport.reset_user_interaction()
        self._visible_state_changed()

    async def set_show_team_members(self, enabled: bool) -> None:
        self.filters.show_team_members = enabled
        self.viewport.reset_user_interaction()
        await self._apply_gates()
        self._visible_state_changed()

    async def set_status_filter(self, status: str) -> bool:
        if status not in _VALID_STATUS_FILTERS:
            self._notify(ValidationError(f"Unknown job status: {status}").as_notice())
            return False
        self.filters.status_filter = status
        self.viewport.reset_user_interaction()
        self._visible_state_changed()
        return True

    async def set_live_tracking(self, enabled: bool) -> None:
        self.filters.live_tracking = enabled
        await self._apply_gates()
        self._visible_state_changed()

    def set_header_collapsed(self, collapsed: bool) -> None:
        """Only affects padding; read when the next fit runs."""
        self.filters.header_collapsed = collapsed

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def filtered_jobs(self) -> list[Job]:
        status = self.filters.status_filter
        if status == STATUS_FILTER_ALL:
            return list(self.store.jobs)
        return [j for j in self.store.jobs if j.status == status]

    @property
    def map_eligible_jobs(self) -> list[Job]:
        if not self.filters.show_jobs:
            return []
        return [j for j in self.filtered_jobs if j.is_map_eligible]

    @property
    def team_members(self) -> list[TeamMember]:
        """Everyone on the team (chips/list UI), located or not."""
        if not self.capabilities.can_view_team:
            return []
        return list(self.store.team_members)

    @property
    def visible_team_members(self) -> list[TeamMember]:
        if not self.team_layer_enabled:
            return []
        return [m for m in self.store.team_members if m.is_map_eligible]

    @property
    def active_worker_count(self) -> int:
        return sum(1 for m in self.team_members if m.is_active)

    @property
    def unread_alert_count(self) -> int:
        if not self.capabilities.can_view_team:
            return 0
        return self.alerts.unread_count

    def eligible_coordinates(self) -> list[Coordinate]:
        coords = [j.coordinate for j in self.map_eligible_jobs if j.coordinate is not None]
        coords.extend(m.last_location.coordinate for m in self.visible_team_members if m.last_location)
        return coords

    def fit_padding(self) -> EdgePadding:
        s = self._settings
        return overlay_padding(
            header_collapsed=self.filters.header_collapsed,
            top_expanded=s.fit_padding_top_expanded,
            top_collapsed=s.fit_padding_top_collapsed,
            side=s.fit_padding_side,
            bottom_nav_height=s.bottom_nav_height,
            bottom_extra=s.fit_padding_bottom_extra,
        )

    def _visible_state_changed(self) -> None:
        if self._closed:
            return
        key = (
            tuple(j.id for j in self.map_eligible_jobs),
            tuple(m.id for m in self.visible_team_members),
            self.filters.live_tracking,
        )
        self.viewport.notify_changed(key)

    # ------------------------------------------------------------------
    # Tap routing and assignment
    # ------------------------------------------------------------------

    def tap_worker(self, member: TeamMember) -> SelectionState:
        state = self.selection.tap_worker(member)
        # A tap rejected during a commit leaves the map where it is
        if (
            isinstance(state, WorkerSelected)
            and state.worker.id == member.id
            and member.last_location is not None
        ):
            self.viewport.focus(member.last_location.coordinate, self._settings.worker_focus_zoom)
        return state

    def tap_job(self, job: Job) -> JobTapOutcome:
        outcome = self.selection.tap_job(job)
        if outcome == JobTapOutcome.OPEN_ACTIONS:
            self.selected_job = job
        return outcome

    async def confirm_assignment(self) -> bool:
        return await self._run_tracked(self.selection.confirm(), on_close=False)

    def cancel_assignment(self) -> SelectionState:
        return self.selection.cancel()

    def clear_selection(self) -> SelectionState:
        return self.selection.clear_selection()

    # ------------------------------------------------------------------
    # Job action menu
    # ------------------------------------------------------------------

    def close_job_actions(self) -> None:
        self.selected_job = None

    def view_selected_job(self) -> Optional[str]:
        job = self.selected_job
        if job is None:
            return None
        self.close_job_actions()
        if self._on_open_job is not None:
            self._on_open_job(job.id)
        return job.id

    def add_selected_job_to_route(self) -> bool:
        job = self.selected_job
        if job is None:
            return False
        self.close_job_actions()
        return self.route.add(job)

    def directions_to_selected_job(self) -> Optional[str]:
        job = self.selected_job
        if job is None:
            return None
        self.close_job_actions()
        url = build_directions_url(job.coordinate, job.address, self._settings.maps_preference)
        if url is not None and self._open_url is not None:
            self._open_url(url)
        return url

    # ------------------------------------------------------------------
    # Route
    # ------------------------------------------------------------------

    async def optimize_route(self) -> bool:
        return await self.route.optimize(self.user_location)

    def start_navigation(self) -> Optional[str]:
        return self.route.start_navigation()

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    def fit_to_markers(self) -> Optional[Region]:
        return self.viewport.fit_to_markers()

    def center_on_me(self) -> Optional[Region]:
        if self.user_location is None:
            return None
        return self.viewport.center_on(self.user_location, self._settings.center_on_me_delta)

    def map_panned(self) -> None:
        self.viewport.mark_user_interaction()

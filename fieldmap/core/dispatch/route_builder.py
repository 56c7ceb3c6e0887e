"""
RouteBuilder: the dispatcher's planned multi-stop itinerary.

A route is an ordered, duplicate-free list of jobs.  Its order changes only
by appending, removing, clearing, or wholesale replacement with an
optimizer's answer.  Stops are numbered ``index + 1`` on read; numbers are
never stored.
"""
from __future__ import annotations

from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from fieldmap.core.dispatch.domain import Coordinate, Job, RouteStop
from fieldmap.core.dispatch.errors import CommitError, DispatchError, ValidationError
from fieldmap.core.dispatch.navigation import build_multi_stop_url
from fieldmap.core.dispatch.notices import Notice, NoticeLevel, Notifier, log_notifier
from fieldmap.core.dispatch.ports import DispatchApi, UrlOpener
from fieldmap.core.dispatch.schemas import OptimizeRouteResponse
from fieldmap.infra.logging_config import get_logger
from fieldmap.infra.metrics import DispatchMetrics

logger = get_logger(__name__)

MIN_STOPS_TO_OPTIMIZE = 2


class RouteBuilder:
    def __init__(
        self,
        api: DispatchApi,
        *,
        notify: Notifier = log_notifier,
        open_url: Optional[UrlOpener] = None,
    ) -> None:
        self._api = api
        self._notify = notify
        self._open_url = open_url
        self._jobs: list[Job] = []
        self.is_optimizing = False
        self.clear_requested = False
        self.panel_visible = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs)

    @property
    def job_ids(self) -> list[str]:
        return [j.id for j in self._jobs]

    def stops(self) -> list[RouteStop]:
        return [RouteStop(number=i + 1, job=job) for i, job in enumerate(self._jobs)]

    def contains(self, job_id: str) -> bool:
        return any(j.id == job_id for j in self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def add(self, job: Job) -> bool:
        if self.contains(job.id):
            self._notify(Notice(
                "Already in Route", "This job is already in your route.", NoticeLevel.INFO,
            ))
            return False

        self._jobs.append(job)
        self.panel_visible = True
        self._notify(Notice(
            "Added to Route", f"{job.title} has been added to your route.", NoticeLevel.SUCCESS,
        ))
        logger.debug("Job added to route (stops=%d)", len(self._jobs), extra={"job_id": job.id})
        return True

    def remove(self, job_id: str) -> bool:
        before = len(self._jobs)
        self._jobs = [j for j in self._jobs if j.id != job_id]
        return len(self._jobs) != before

    def request_clear(self) -> bool:
        """First step of clearing; the host asks 'Clear Route?' before ``confirm_clear``."""
        if not self._jobs:
            return False
        self.clear_requested = True
        return True

    def cancel_clear(self) -> None:
        self.clear_requested = False

    def confirm_clear(self) -> bool:
        if not self.clear_requested:
            return False
        self.clear_requested = False
        self._jobs = []
        self.panel_visible = False
        logger.debug("Route cleared")
        return True

    # ------------------------------------------------------------------
    # Optimizer
    # ------------------------------------------------------------------

    def _apply_order(self, ordered_ids: list[str]) -> int:
        """
        Replace the local order with the optimizer's.

        Ids unknown locally are dropped, and so are local jobs the response
        left out.  Returns how many response ids were discarded.
        """
        by_id = {j.id: j for j in self._jobs}
        reordered: list[Job] = []
        seen: set[str] = set()
        for job_id in ordered_ids:
            job = by_id.get(job_id)
            if job is None or job_id in seen:
                continue
            seen.add(job_id)
            reordered.append(job)
        self._jobs = reordered
        return len(ordered_ids) - len(reordered)

    async def optimize(self, origin: Optional[Coordinate] = None) -> bool:
        try:
            if self.is_optimizing:
                raise ValidationError("Route optimization is already running.", title="Please Wait")
            if len(self._jobs) < MIN_STOPS_TO_OPTIMIZE:
                raise ValidationError(
                    "Add at least 2 jobs to optimize your route.", title="Not Enough Stops",
                )
        except DispatchError as exc:
            self._notify(exc.as_notice())
            return False

        self.is_optimizing = True
        try:
            response = await self._api.optimize_route(self.job_ids, origin)
            if not response.ok:
                raise CommitError(
                    response.error or "Could not optimize route. Please try again.",
                    title="Optimization Failed",
                )

            try:
                payload = OptimizeRouteResponse.model_validate(response.data or {})
            except PydanticValidationError:
                payload = OptimizeRouteResponse()
            if payload.optimized_job_ids is None:
                raise CommitError(
                    "Could not optimize route. Please try again.", title="Optimization Failed",
                )

            dropped = self._apply_order(payload.optimized_job_ids)
            if dropped:
                logger.warning("Optimizer returned %d unknown or repeated job id(s)", dropped)
            DispatchMetrics.optimization("ok")
            self._notify(Notice(
                "Route Optimized",
                "Your route has been optimized for the shortest distance.",
                NoticeLevel.SUCCESS,
            ))
            return True

        except CommitError as exc:
            DispatchMetrics.optimization("rejected")
            logger.warning("Route optimization rejected: %s", exc.detail)
            self._notify(exc.as_notice())
            return False

        except Exception as exc:
            DispatchMetrics.optimization("error")
            logger.error("Route optimization error: %s", exc, exc_info=True)
            self._notify(Notice(
                "Error", "An error occurred while optimizing the route.", NoticeLevel.ERROR,
            ))
            return False

        finally:
            self.is_optimizing = False

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigation_url(self) -> Optional[str]:
        stops = [j.coordinate for j in self._jobs if j.coordinate is not None]
        return build_multi_stop_url(stops)

    def start_navigation(self) -> Optional[str]:
        """Hand the whole route to the maps app; no-op when no stop has coordinates."""
        url = self.navigation_url()
        if url is None:
            return None
        if self._open_url is not None:
            self._open_url(url)
        logger.info("Navigation started with %d stop(s)", len(self._jobs))
        return url

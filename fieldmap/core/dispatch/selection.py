"""
Tap-to-assign state machine.

    Idle --tap_worker(w)--> WorkerSelected(w)
    WorkerSelected(w) --tap_worker(w)--> Idle                  (toggle)
    WorkerSelected(w) --tap_worker(w2)--> WorkerSelected(w2)
    WorkerSelected(w) --tap_job(j)--> ConfirmPending(w, j)
    ConfirmPending(w, j) --cancel--> WorkerSelected(w)
    ConfirmPending(w, j) --confirm--> Committing(w, j) --> Idle
    *  --clear_selection--> Idle

The armed worker and the pending pairing live in one tagged state, so a
pending assignment without a selected worker cannot be represented.
While a commit is outstanding every tap and confirm is rejected; at most
one assignment call is in flight.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from fieldmap.core.dispatch.domain import Job, TeamMember
from fieldmap.core.dispatch.errors import CommitError, DispatchError, ValidationError
from fieldmap.core.dispatch.notices import Notice, NoticeLevel, Notifier, log_notifier
from fieldmap.core.dispatch.ports import DispatchApi
from fieldmap.infra.logging_config import get_logger
from fieldmap.infra.metrics import DispatchMetrics

logger = get_logger(__name__)


# ============================================================================
# STATES
# ============================================================================

@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class WorkerSelected:
    worker: TeamMember


@dataclass(frozen=True)
class ConfirmPending:
    worker: TeamMember
    job: Job


@dataclass(frozen=True)
class Committing:
    worker: TeamMember
    job: Job


SelectionState = Union[Idle, WorkerSelected, ConfirmPending, Committing]

IDLE = Idle()


class JobTapOutcome(str, Enum):
    CONFIRM_PENDING = "confirm_pending"  # assignment dialog should open
    OPEN_ACTIONS = "open_actions"  # no worker armed: show the job action menu
    IGNORED = "ignored"  # rejected (commit in progress)


# ============================================================================
# MACHINE
# ============================================================================

class SelectionAssignmentMachine:
    def __init__(
        self,
        api: DispatchApi,
        *,
        can_assign: bool,
        on_assigned: Optional[Callable[[], Awaitable[object]]] = None,
        notify: Notifier = log_notifier,
    ) -> None:
        self._api = api
        self._can_assign = can_assign
        self._on_assigned = on_assigned
        self._notify = notify
        self._state: SelectionState = IDLE
        self._commit_in_flight = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def can_assign(self) -> bool:
        return self._can_assign

    @property
    def selected_worker(self) -> Optional[TeamMember]:
        if isinstance(self._state, Idle):
            return None
        return self._state.worker

    @property
    def pending_assignment(self) -> Optional[tuple[TeamMember, Job]]:
        if isinstance(self._state, (ConfirmPending, Committing)):
            return self._state.worker, self._state.job
        return None

    @property
    def is_committing(self) -> bool:
        """True while an assignment call is outstanding; the host disables tap/confirm controls."""
        return self._commit_in_flight

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _require_no_commit(self) -> None:
        if self._commit_in_flight:
            raise ValidationError(
                "An assignment is already in progress.", title="Please Wait",
            )

    def tap_worker(self, worker: TeamMember) -> SelectionState:
        try:
            self._require_no_commit()
            if not self._can_assign:
                raise ValidationError("You don't have permission to assign jobs.")
        except DispatchError as exc:
            self._notify(exc.as_notice())
            return self._state

        current = self.selected_worker
        if current is not None and current.id == worker.id:
            self._state = IDLE
            logger.debug("Worker deselected", extra={"worker_id": worker.id})
        else:
            # Re-arming drops any pairing awaiting confirmation
            self._state = WorkerSelected(worker)
            logger.debug("Worker selected", extra={"worker_id": worker.id})
        return self._state

    def tap_job(self, job: Job) -> JobTapOutcome:
        if self._commit_in_flight:
            self._notify(Notice(
                "Please Wait", "An assignment is already in progress.", NoticeLevel.WARNING,
            ))
            return JobTapOutcome.IGNORED

        state = self._state
        if not self._can_assign or isinstance(state, Idle):
            return JobTapOutcome.OPEN_ACTIONS

        self._state = ConfirmPending(state.worker, job)
        logger.debug(
            "Assignment pending confirmation",
            extra={"worker_id": state.worker.id, "job_id": job.id},
        )
        return JobTapOutcome.CONFIRM_PENDING

    def cancel(self) -> SelectionState:
        """Drop the pending job pairing; the worker stays armed."""
        if isinstance(self._state, ConfirmPending):
            self._state = WorkerSelected(self._state.worker)
        return self._state

    def clear_selection(self) -> SelectionState:
        self._state = IDLE
        return self._state

    async def confirm(self) -> bool:
        """
        Commit the pending assignment.

        Returns True when the server accepted it.  Success or failure, the
        machine ends in ``Idle``; on success the jobs refresh runs first.
        """
        try:
            self._require_no_commit()
            if not isinstance(self._state, ConfirmPending):
                raise ValidationError("Select a worker, then tap a job to assign.")
        except DispatchError as exc:
            self._notify(exc.as_notice())
            return False

        worker, job = self._state.worker, self._state.job
        self._state = Committing(worker, job)
        self._commit_in_flight = True
        try:
            response = await self._api.assign_job(job.id, worker.user_id)
            if not response.ok:
                raise CommitError(
                    response.error or "Failed to assign job. Please try again.",
                    title="Assignment Failed",
                )

            DispatchMetrics.assignment("ok")
            logger.info(
                "Job assigned", extra={"job_id": job.id, "worker_id": worker.user_id},
            )
            self._notify(Notice(
                "Job Assigned",
                f"{job.title} has been assigned to {worker.display_name}",
                NoticeLevel.SUCCESS,
            ))
            if self._on_assigned is not None:
                await self._on_assigned()
            return True

        except CommitError as exc:
            DispatchMetrics.assignment("rejected")
            logger.warning(
                "Assignment rejected: %s", exc.detail,
                extra={"job_id": job.id, "worker_id": worker.user_id},
            )
            self._notify(exc.as_notice())
            return False

        except Exception as exc:
            DispatchMetrics.assignment("error")
            logger.error(
                "Assignment error: %s", exc, exc_info=True,
                extra={"job_id": job.id, "worker_id": worker.user_id},
            )
            self._notify(Notice(
                "Error", "An error occurred while assigning the job.", NoticeLevel.ERROR,
            ))
            return False

        finally:
            self._commit_in_flight = False
            self._state = IDLE

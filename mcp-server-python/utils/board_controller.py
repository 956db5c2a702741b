"""
Board controller: turns drag gestures into stage changes.

The controller keeps the latest confirmed job snapshot (pushed by the jobs
subscription or loaded directly) and an overlay of optimistic placements.
A drop moves the card in the overlay at once, then asks the job store to
change the stage. Success keeps the card where it was dropped; failure
removes the overlay entry so the card falls back to its confirmed column,
and the failure is reported through ``on_failure`` and the returned result.

Several drops of one card may be in flight at once. The job store applies
them one after another, the overlay keeps showing the latest drop, and a
store result older than the confirmed job is ignored.

Decision rules for a drop of job J on container C:
- C is a stage value: target is that stage
- C is the id of another card on the board: target is that card's column
- C is missing or unknown: cancelled drag, nothing happens
- target equals J's current column: no-op, no store call
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from db.jobs_store import JobStore
from models.errors import ToolError, create_not_found_error
from models.identity import Identity
from models.stage import STAGE_ORDER, Stage, parse_stage
from schemas.documents import JobDocument
from utils.subscriptions import Subscription, SubscriptionHub
from utils.validation import validate_stage

logger = logging.getLogger(__name__)


@dataclass
class MoveResult:
    """Outcome of one drop."""

    job_id: str
    from_stage: Optional[Stage]
    to_stage: Optional[Stage]
    moved: bool
    error: Optional[ToolError] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def action(self) -> str:
        if self.error is not None:
            return "reverted"
        return "moved" if self.moved else "noop"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.job_id,
            "from_status": self.from_stage.value if self.from_stage else None,
            "to_status": self.to_stage.value if self.to_stage else None,
            "action": self.action,
            "success": self.success,
        }
        if self.error is not None:
            result.update(self.error.to_dict())
        return result


class BoardController:
    """
    Drag-and-drop controller for one user's board.

    Usage:
        controller = BoardController(jobs, identity, hub=hub, on_failure=show_toast)
        controller.start()
        ...
        controller.drag_start(job_id)
        result = await controller.drag_end(job_id, "interview")
    """

    def __init__(
        self,
        jobs: JobStore,
        identity: Identity,
        hub: Optional[SubscriptionHub] = None,
        on_failure: Optional[Callable[[MoveResult], Any]] = None,
    ):
        self.jobs = jobs
        self.identity = identity
        self.hub = hub
        self.on_failure = on_failure
        self._confirmed: Dict[str, JobDocument] = {}
        self._order: List[str] = []
        self._optimistic: Dict[str, Stage] = {}
        self._subscription: Optional[Subscription] = None
        self.active_job_id: Optional[str] = None
        self.over_container: Optional[str] = None
        self.last_error: Optional[ToolError] = None

    # Snapshot handling

    def start(self) -> Subscription:
        """Follow the caller's job list through the subscription hub."""
        if self.hub is None:
            raise ValueError("BoardController.start() needs a SubscriptionHub")
        if self._subscription is None or self._subscription.closed:
            self._subscription = self.hub.subscribe_jobs(self.identity, self.apply_snapshot)
        return self._subscription

    def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()

    def apply_snapshot(self, jobs: List[JobDocument]) -> None:
        """
        Replace the confirmed state with a fresh job list.

        Optimistic placements the snapshot already confirms, or whose job has
        disappeared, are dropped; the rest stay until their move settles.
        """
        self._confirmed = {job.id: job for job in jobs}
        self._order = [job.id for job in jobs]
        for job_id, stage in list(self._optimistic.items()):
            job = self._confirmed.get(job_id)
            if job is None or job.status == stage:
                del self._optimistic[job_id]

    def placement(self, job_id: str) -> Optional[Stage]:
        """Column the card is shown in: optimistic if pending, else confirmed."""
        if job_id in self._optimistic:
            return self._optimistic[job_id]
        job = self._confirmed.get(job_id)
        return job.status if job else None

    def confirmed_stage(self, job_id: str) -> Optional[Stage]:
        job = self._confirmed.get(job_id)
        return job.status if job else None

    def is_pending(self, job_id: str) -> bool:
        return job_id in self._optimistic

    def jobs_view(self) -> List[JobDocument]:
        """Jobs in snapshot order with optimistic placements applied."""
        view = []
        for job_id in self._order:
            job = self._confirmed[job_id]
            stage = self._optimistic.get(job_id)
            if stage is not None and stage != job.status:
                job = job.model_copy(update={"status": stage})
            view.append(job)
        return view

    def columns(self) -> Dict[Stage, List[JobDocument]]:
        """Board columns in display order, each most recently created first."""
        columns: Dict[Stage, List[JobDocument]] = {stage: [] for stage in STAGE_ORDER}
        for job in self.jobs_view():
            columns[job.status].append(job)
        return columns

    # Move decisions

    def resolve_target(self, container_id: Optional[str]) -> Optional[Stage]:
        """Map a drop container id to a column, or None for a cancelled drag."""
        if not container_id:
            return None
        stage = parse_stage(container_id)
        if stage is not None:
            return stage
        if container_id in self._confirmed:
            return self.placement(container_id)
        return None

    def plan_move(self, job_id: str, target_stage) -> Optional[Stage]:
        """
        Decide whether dropping ``job_id`` on ``target_stage`` needs a transition.

        Returns:
            The target Stage, or None when the card is already in that column

        Raises:
            ToolError: NOT_FOUND if the job is not on the board,
                VALIDATION_ERROR if the target is not a stage
        """
        if job_id not in self._confirmed:
            raise create_not_found_error("Job", job_id)
        target = validate_stage(target_stage, "target stage")
        if target == self.placement(job_id):
            return None
        return target

    def _revert(self, job_id: str, target: Stage) -> None:
        if self._optimistic.get(job_id) == target:
            del self._optimistic[job_id]

    async def _report(self, result: MoveResult) -> None:
        if self.on_failure is None:
            return
        outcome = self.on_failure(result)
        if inspect.isawaitable(outcome):
            await outcome

    async def move(self, job_id: str, target_stage) -> MoveResult:
        """
        Move a card to a column: optimistic placement, then the stage change.

        Returns:
            MoveResult; on store failure ``error`` is set, the card is back in
            its confirmed column and ``on_failure`` has been called
        """
        target = self.plan_move(job_id, target_stage)
        current = self.placement(job_id)
        if target is None:
            return MoveResult(job_id, current, current, moved=False)

        self._optimistic[job_id] = target
        try:
            job = await self.jobs.set_stage(self.identity, job_id, target)
        except ToolError as e:
            self._revert(job_id, target)
            self.last_error = e
            logger.warning(
                f"Reverted move of job {job_id} to {target.value}: {e.code.value} {e.message}"
            )
            result = MoveResult(job_id, current, target, moved=False, error=e)
            await self._report(result)
            return result
        except Exception:
            self._revert(job_id, target)
            raise

        self._confirm(job)
        self._revert(job_id, target)
        return MoveResult(job_id, current, target, moved=True)

    def _confirm(self, job: JobDocument) -> None:
        """Record a job returned by the store unless a newer one is already known."""
        known = self._confirmed.get(job.id)
        if known is not None and job.updated_at >= known.updated_at:
            self._confirmed[job.id] = job

    # Gestures

    def drag_start(self, job_id: str) -> Optional[JobDocument]:
        """Remember the card being dragged; returns it for the drag overlay."""
        if job_id not in self._confirmed:
            self.active_job_id = None
            return None
        self.active_job_id = job_id
        view = {job.id: job for job in self.jobs_view()}
        return view[job_id]

    def drag_over(self, container_id: Optional[str]) -> None:
        self.over_container = container_id

    async def drag_end(self, job_id: str, container_id: Optional[str]) -> MoveResult:
        """Finish a drag; dropping outside any column cancels it."""
        self.active_job_id = None
        self.over_container = None
        current = self.placement(job_id)
        target = self.resolve_target(container_id)
        if target is None:
            return MoveResult(job_id, current, current, moved=False)
        return await self.move(job_id, target)

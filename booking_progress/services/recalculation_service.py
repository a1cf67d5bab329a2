# File: booking_progress/services/recalculation_service.py

"""
Recalculation of the cached progress fields.

``Milestone.progress_percentage`` and ``Booking.project_progress`` are
materialized aggregates. They are written here and nowhere else: every
mutation of a task or milestone ends in one of the ``on_*`` entry points,
which re-read the affected children, recompute the parents from scratch and
commit the caller's write together with the recomputed values.

Each entry point optionally takes a ``write`` callable. It receives the
locked entry entity (task, milestone or booking) inside the transaction
and returns the ``Change`` records for what it modified, so the caller's
write and the recompute share one commit and are replayed together when a
version conflict forces a retry.

Rows are always locked booking first, then milestones, then tasks. Entry
points that start from a task or milestone read it unlocked to find its
parents, lock top-down, and retry if the child moved in between.

Change events go out only after the commit succeeds, in task, milestone,
booking order. Their payloads are snapshotted before the commit.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from booking_progress.core.config import settings
from booking_progress.core.events import EntityChangedEvent, EventBus
from booking_progress.core.exceptions import (
    ConcurrentModificationException,
    IntegrityException,
)
from booking_progress.db.models import Booking, Milestone, Task
from booking_progress.db.models.enums import EntityType, ProgressMode
from booking_progress.repositories.booking_repository import BookingRepository
from booking_progress.repositories.milestone_repository import MilestoneRepository
from booking_progress.repositories.task_repository import TaskRepository
from booking_progress.services.base_service import BaseService, is_lock_conflict
from booking_progress.services.progress_calculator import (
    compute_booking_progress,
    compute_milestone_progress,
)

logger = logging.getLogger(__name__)

_EVENT_ORDER = {EntityType.TASK: 0, EntityType.MILESTONE: 1, EntityType.BOOKING: 2}


@dataclass
class Change:
    """
    One entity touched inside a recompute transaction.

    Deleted entities carry a ``snapshot`` taken before the delete, since the
    row cannot be re-read once committed.
    """

    entity_type: EntityType
    entity: Any
    booking_id: Any = None
    changed_fields: List[str] = field(default_factory=list)
    deleted: bool = False
    snapshot: Optional[Dict[str, Any]] = None

    @property
    def key(self):
        entity_id = self.snapshot["id"] if self.snapshot is not None else self.entity.id
        return self.entity_type, entity_id

    def take_snapshot(self) -> None:
        """Capture the entity's flushed state while the transaction is still open."""
        if self.snapshot is None:
            self.snapshot = self.entity.to_dict()

    @classmethod
    def for_deleted(cls, entity_type: EntityType, entity: Any, booking_id: Any = None) -> "Change":
        return cls(
            entity_type=entity_type,
            entity=None,
            booking_id=booking_id,
            changed_fields=["deleted"],
            deleted=True,
            snapshot=entity.to_dict(),
        )


Write = Callable[[Any], Sequence[Change]]


@dataclass
class RecomputeResult:
    """Values written by a successful recompute."""

    booking_id: Any
    project_progress: int
    milestone_progress: Dict[Any, int] = field(default_factory=dict)
    attempts: int = 1


@dataclass
class _Outcome:
    changes: List[Change] = field(default_factory=list)
    result: Optional[RecomputeResult] = None
    orphan: Optional[IntegrityException] = None


class RecalculationService(BaseService):
    """
    Service keeping cached milestone and booking progress consistent with
    their tasks.

    Recomputes are idempotent: values are derived from the current rows and
    assigned, so replaying an entry point yields the same final state.
    Optimistic version checks on the three tables detect concurrent writers;
    the whole attempt is rolled back and replayed on a fresh read up to
    ``max_retries`` extra times.
    """

    def __init__(
            self,
            session: Session,
            event_bus: Optional[EventBus] = None,
            mode: Optional[ProgressMode] = None,
            max_retries: Optional[int] = None,
    ):
        super().__init__(session, event_bus)
        self.tasks = TaskRepository(session)
        self.milestones = MilestoneRepository(session)
        self.bookings = BookingRepository(session)
        self.mode = ProgressMode(mode or settings.PROGRESS_MODE)
        self.max_retries = settings.RECOMPUTE_MAX_RETRIES if max_retries is None else max(0, max_retries)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def on_task_mutated(
            self, task_id: Any, write: Optional[Write] = None, user_id: Optional[str] = None
    ) -> RecomputeResult:
        """
        Recompute the milestone and booking above a task.

        Args:
            task_id: ID of the task that changed
            write: Optional caller write applied to the locked task first
            user_id: Acting user, recorded on the emitted events

        Returns:
            RecomputeResult for the task's booking

        Raises:
            EntityNotFoundException: If the task doesn't exist
            IntegrityException: If the milestone or booking is missing; the
                task write is committed, nothing above it is written
            ConcurrentModificationException: If retries are exhausted
        """

        def attempt() -> _Outcome:
            booking, milestone, task = self._lock_task_path(task_id)
            changes = self._apply_write(write, task)
            return self._recompute_parents(
                booking, milestone, task.milestone_id, changes, EntityType.TASK, task.id, "on_task_mutated"
            )

        return self._execute("on_task_mutated", EntityType.TASK, task_id, attempt, user_id)

    def on_milestone_mutated(
            self, milestone_id: Any, write: Optional[Write] = None, user_id: Optional[str] = None
    ) -> RecomputeResult:
        """
        Recompute a milestone from its tasks and then its booking.

        Args:
            milestone_id: ID of the milestone that changed (or gained a task)
            write: Optional caller write applied to the locked milestone first
            user_id: Acting user, recorded on the emitted events

        Raises:
            EntityNotFoundException: If the milestone doesn't exist
            IntegrityException: If the booking is missing
            ConcurrentModificationException: If retries are exhausted
        """

        def attempt() -> _Outcome:
            booking, milestone = self._lock_milestone_path(milestone_id)
            changes = self._apply_write(write, milestone)
            return self._recompute_parents(
                booking, milestone, milestone.id, changes, EntityType.MILESTONE, milestone.id,
                "on_milestone_mutated",
            )

        return self._execute("on_milestone_mutated", EntityType.MILESTONE, milestone_id, attempt, user_id)

    def on_task_deleted(
            self, milestone_id: Any, write: Optional[Write] = None, user_id: Optional[str] = None
    ) -> RecomputeResult:
        """
        Recompute the surviving milestone (and booking) after a task delete.

        ``write`` receives the milestone and performs the delete itself when
        the caller wants the delete and the recompute in one commit.
        """

        def attempt() -> _Outcome:
            booking, milestone = self._lock_milestone_path(milestone_id)
            changes = self._apply_write(write, milestone)
            return self._recompute_parents(
                booking, milestone, milestone.id, changes, EntityType.MILESTONE, milestone.id, "on_task_deleted"
            )

        return self._execute("on_task_deleted", EntityType.MILESTONE, milestone_id, attempt, user_id)

    def on_milestone_deleted(
            self, booking_id: Any, write: Optional[Write] = None, user_id: Optional[str] = None
    ) -> RecomputeResult:
        """Recompute a booking after one of its milestones was deleted."""
        return self._recompute_booking(booking_id, write, user_id, "on_milestone_deleted")

    def recompute(
            self, booking_id: Any, write: Optional[Write] = None, user_id: Optional[str] = None
    ) -> RecomputeResult:
        """
        Recompute every milestone of a booking and the booking itself.

        This is the entry point for collaborators that changed tasks or
        milestones in bulk; they call it instead of writing cached fields.

        Raises:
            EntityNotFoundException: If the booking doesn't exist
            ConcurrentModificationException: If retries are exhausted
        """
        return self._recompute_booking(booking_id, write, user_id, "recompute")

    # ------------------------------------------------------------------
    # Transaction and retry
    # ------------------------------------------------------------------

    def _execute(
            self,
            operation: str,
            entity_type: EntityType,
            entity_id: Any,
            attempt: Callable[[], _Outcome],
            user_id: Optional[str],
    ) -> RecomputeResult:
        attempts = 0
        while True:
            attempts += 1
            try:
                with self.transaction():
                    outcome = attempt()
                    self.session.flush()
                    for change in outcome.changes:
                        change.take_snapshot()
                break
            except (StaleDataError, OperationalError) as e:
                if isinstance(e, OperationalError) and not is_lock_conflict(e):
                    raise
                if attempts > self.max_retries:
                    logger.warning(
                        f"{operation} on {entity_type.value} {entity_id} gave up after {attempts} attempt(s): {e}"
                    )
                    raise ConcurrentModificationException(
                        f"{entity_type.value} {entity_id} was modified concurrently, please retry",
                        entity_type=entity_type.value,
                        entity_id=entity_id,
                        attempts=attempts,
                    ) from e
                logger.warning(
                    f"Conflict during {operation} on {entity_type.value} {entity_id} "
                    f"(attempt {attempts}: {type(e).__name__}), retrying with a fresh read"
                )

        self.publish_changes(outcome.changes, user_id)

        if outcome.orphan is not None:
            logger.warning(f"Data integrity problem during {operation}: {outcome.orphan.message}")
            raise outcome.orphan

        outcome.result.attempts = attempts
        self._log_operation(
            operation,
            f"booking {outcome.result.booking_id} -> {outcome.result.project_progress}% "
            f"(milestones {outcome.result.milestone_progress})",
        )
        return outcome.result

    @staticmethod
    def _apply_write(write: Optional[Write], entity: Any) -> List[Change]:
        if write is None:
            return []
        return list(write(entity) or [])

    # ------------------------------------------------------------------
    # Locking (booking, then milestone, then task)
    # ------------------------------------------------------------------

    def _lock_booking(self, booking_id: Any) -> Optional[Booking]:
        if booking_id is None:
            return None
        return self.bookings.get_by_id(booking_id, for_update=True, fresh=True)

    @staticmethod
    def _ensure_parent(entity_type: EntityType, entity_id: Any, parent_id: Any, expected_id: Any) -> None:
        if parent_id != expected_id:
            # The parents locked above are no longer this row's parents
            raise StaleDataError(
                f"{entity_type.value} {entity_id} moved from {expected_id} to {parent_id} while being locked"
            )

    def _lock_milestone_path(self, milestone_id: Any) -> Tuple[Optional[Booking], Milestone]:
        booking_id = self.get_entity_or_404(self.milestones, milestone_id, fresh=True).booking_id
        booking = self._lock_booking(booking_id)
        milestone = self.get_entity_or_404(self.milestones, milestone_id, for_update=True, fresh=True)
        self._ensure_parent(EntityType.MILESTONE, milestone.id, milestone.booking_id, booking_id)
        return booking, milestone

    def _lock_task_path(self, task_id: Any) -> Tuple[Optional[Booking], Optional[Milestone], Task]:
        milestone_id = self.get_entity_or_404(self.tasks, task_id, fresh=True).milestone_id
        located = self.milestones.get_by_id(milestone_id, fresh=True)
        booking_id = located.booking_id if located is not None else None

        booking = self._lock_booking(booking_id)
        milestone = self.milestones.get_by_id(milestone_id, for_update=True, fresh=True)
        if milestone is not None:
            self._ensure_parent(EntityType.MILESTONE, milestone.id, milestone.booking_id, booking_id)
        task = self.get_entity_or_404(self.tasks, task_id, for_update=True, fresh=True)
        self._ensure_parent(EntityType.TASK, task.id, task.milestone_id, milestone_id)
        return booking, milestone, task

    # ------------------------------------------------------------------
    # Recompute steps (run inside the transaction)
    # ------------------------------------------------------------------

    def _recompute_parents(
            self,
            booking: Optional[Booking],
            milestone: Optional[Milestone],
            milestone_id: Any,
            changes: List[Change],
            child_type: EntityType,
            child_id: Any,
            operation: str,
    ) -> _Outcome:
        # Both parents are resolved before anything above the child is written
        if milestone is None:
            return _Outcome(
                changes=changes,
                orphan=IntegrityException(
                    child_type.value, child_id, EntityType.MILESTONE.value, milestone_id, operation
                ),
            )
        if booking is None:
            self._fill_booking_id(changes, milestone.booking_id)
            return _Outcome(
                changes=changes,
                orphan=IntegrityException(
                    EntityType.MILESTONE.value, milestone.id, EntityType.BOOKING.value,
                    milestone.booking_id, operation,
                ),
            )

        milestone_progress = {milestone.id: self._recompute_milestone(milestone, changes)}
        project_progress = self._recompute_booking_row(booking, changes)
        self._fill_booking_id(changes, booking.id)
        return _Outcome(
            changes=changes,
            result=RecomputeResult(
                booking_id=booking.id,
                project_progress=project_progress,
                milestone_progress=milestone_progress,
            ),
        )

    def _recompute_booking(
            self, booking_id: Any, write: Optional[Write], user_id: Optional[str], operation: str
    ) -> RecomputeResult:

        def attempt() -> _Outcome:
            booking = self.get_entity_or_404(self.bookings, booking_id, for_update=True, fresh=True)
            # Lock the milestones before the write can delete or update any of them
            self.milestones.list_by_booking(booking.id, fresh=True, for_update=True)
            changes = self._apply_write(write, booking)
            self.session.flush()
            milestone_progress = {
                milestone.id: self._recompute_milestone(milestone, changes)
                for milestone in self.milestones.list_by_booking(booking.id, fresh=True)
            }
            project_progress = self._recompute_booking_row(booking, changes)
            self._fill_booking_id(changes, booking.id)
            return _Outcome(
                changes=changes,
                result=RecomputeResult(
                    booking_id=booking.id,
                    project_progress=project_progress,
                    milestone_progress=milestone_progress,
                ),
            )

        return self._execute(operation, EntityType.BOOKING, booking_id, attempt, user_id)

    def _recompute_milestone(self, milestone: Milestone, changes: List[Change]) -> int:
        tasks = self.tasks.list_by_milestone(milestone.id, fresh=True)
        value = compute_milestone_progress(tasks, self.mode)
        changed = ["progress_percentage"] if milestone.progress_percentage != value else []
        milestone.progress_percentage = value
        self._record(changes, Change(EntityType.MILESTONE, milestone, milestone.booking_id, changed))
        return value

    def _recompute_booking_row(self, booking: Booking, changes: List[Change]) -> int:
        # The query autoflushes pending milestone values before re-reading
        milestones = self.milestones.list_by_booking(booking.id, fresh=True)
        value = compute_booking_progress(milestones)
        changed = ["project_progress"] if booking.project_progress != value else []
        booking.project_progress = value
        self.session.flush()
        self._record(changes, Change(EntityType.BOOKING, booking, booking.id, changed))
        return value

    @staticmethod
    def _record(changes: List[Change], change: Change) -> None:
        """Merge a change into the list, one entry per entity."""
        for existing in changes:
            if existing.key == change.key and not existing.deleted:
                for name in change.changed_fields:
                    if name not in existing.changed_fields:
                        existing.changed_fields.append(name)
                return
        changes.append(change)

    @staticmethod
    def _fill_booking_id(changes: List[Change], booking_id: Any) -> None:
        for change in changes:
            if change.booking_id is None:
                change.booking_id = booking_id

    # ------------------------------------------------------------------
    # Events (after commit)
    # ------------------------------------------------------------------

    def publish_changes(self, changes: List[Change], user_id: Optional[str] = None) -> None:
        """Publish change events for committed changes, tasks first, then milestones, then the booking."""
        ordered = sorted(changes, key=lambda c: _EVENT_ORDER[c.entity_type])
        for change in ordered:
            self.event_bus.publish(self._to_event(change, user_id))

    @staticmethod
    def _to_event(change: Change, user_id: Optional[str]) -> EntityChangedEvent:
        payload = dict(change.snapshot) if change.snapshot is not None else change.entity.to_dict()
        version = payload.get("version") or 0
        if change.deleted:
            # A delete supersedes the last state subscribers saw
            version += 1
        return EntityChangedEvent(
            entity_type=change.entity_type.value,
            entity_id=payload["id"],
            booking_id=change.booking_id,
            changed_fields=list(change.changed_fields),
            new_value=payload,
            version=version,
            updated_at=payload.get("updated_at"),
            deleted=change.deleted,
            user_id=user_id,
        )


def task_change(task: Task, changed_fields: Sequence[str], booking_id: Any = None) -> Change:
    return Change(EntityType.TASK, task, booking_id, list(changed_fields))


def milestone_change(milestone: Milestone, changed_fields: Sequence[str]) -> Change:
    return Change(EntityType.MILESTONE, milestone, milestone.booking_id, list(changed_fields))

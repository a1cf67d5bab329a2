# File: booking_progress/services/progress_service.py

"""
Progress service: the entry point for reading and changing booking progress.

Every operation checks the caller's relation to the booking before any
milestone or task data is read, validates the input, and routes writes
through the RecalculationService so the cached aggregates are recomputed
in the same commit.

Access rules:
    - read (progress, display status, subscriptions): the booking's client,
      its provider, or an admin
    - write (task/milestone edits, creates, deletes, seeding, recompute):
      the booking's provider or an admin
    - milestone reviews (approve/reject): any party to the booking
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from booking_progress.core.config import settings
from booking_progress.core.events import EventBus, EventHandler, Subscription
from booking_progress.core.exceptions import (
    EntityNotFoundException,
    ForbiddenException,
    IntegrityException,
    InvalidStatusTransitionException,
    ValidationException,
)
from booking_progress.db.models import Booking, Milestone, MilestoneApproval, Task
from booking_progress.db.models.base import ModelValidationError, utcnow
from booking_progress.db.models.enums import (
    CallerRole,
    CanonicalStatus,
    EntityType,
    ProgressMode,
    ReviewAction,
    ReviewOutcome,
    WorkStatus,
)
from booking_progress.repositories.booking_repository import BookingRepository
from booking_progress.repositories.invoice_repository import InvoiceRepository
from booking_progress.repositories.milestone_approval_repository import MilestoneApprovalRepository
from booking_progress.repositories.milestone_repository import MilestoneRepository
from booking_progress.repositories.task_repository import TaskRepository
from booking_progress.schemas.progress import (
    MilestoneApprovalRequest,
    MilestoneCreate,
    MilestoneUpdate,
    TaskCreate,
    TaskUpdate,
)
from booking_progress.services.base_service import BaseService
from booking_progress.services.milestone_templates import build_default_plan
from booking_progress.services.overdue import is_overdue
from booking_progress.services.progress_calculator import (
    count_completed_milestones,
    summarize_tasks,
)
from booking_progress.services.recalculation_service import (
    Change,
    RecalculationService,
    RecomputeResult,
    milestone_change,
    task_change,
)
from booking_progress.services.risk_assessment import assess_risks
from booking_progress.services.status_inference import (
    derive_display_status,
    status_subtitle,
    summarize_booking_statuses,
)

logger = logging.getLogger(__name__)

COMPLETED = WorkStatus.COMPLETED.value
CANCELLED = WorkStatus.CANCELLED.value
PENDING = WorkStatus.PENDING.value

# Task fields a non-editable task still accepts
ALWAYS_EDITABLE_FIELDS = {"status"}


@dataclass(frozen=True)
class Caller:
    """Identity and role of whoever invokes the service."""

    id: str
    role: CallerRole = CallerRole.CLIENT

    @property
    def is_admin(self) -> bool:
        return CallerRole(self.role) is CallerRole.ADMIN


def check_status_transition(
        entity_type: str, entity_id: Any, current: str, new: str
) -> bool:
    """
    Validate a task or milestone status change.

    Any status may move to any other, except that a cancelled entity can
    only be reopened to pending.

    Returns:
        False for a same-status no-op, True for a real transition

    Raises:
        InvalidStatusTransitionException: If the move is not allowed
    """
    if current == new:
        return False
    if current == CANCELLED and new != PENDING:
        raise InvalidStatusTransitionException(entity_type, entity_id, current, new, [PENDING])
    return True


def serialize_task(task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
    data = task.to_dict()
    data["is_overdue"] = is_overdue(task, now)
    return data


def serialize_milestone(milestone: Milestone, now: Optional[datetime] = None) -> Dict[str, Any]:
    data = milestone.to_dict()
    data["is_overdue"] = is_overdue(milestone, now)
    return data


class ProgressService(BaseService):
    """
    Service for booking progress reads and task/milestone mutations.
    """

    def __init__(
            self,
            session: Session,
            event_bus: Optional[EventBus] = None,
            mode: Optional[ProgressMode] = None,
            max_retries: Optional[int] = None,
            clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            session: Database session
            event_bus: Bus for change events (the global bus by default)
            mode: Progress mode, ``settings.PROGRESS_MODE`` by default
            max_retries: Recompute retries, ``settings.RECOMPUTE_MAX_RETRIES`` by default
            clock: Source of "now", for overdue checks and completion times
        """
        super().__init__(session, event_bus)
        self.mode = ProgressMode(mode or settings.PROGRESS_MODE)
        self.clock = clock or utcnow
        self.recalculation = RecalculationService(session, self.event_bus, self.mode, max_retries)
        self.bookings = BookingRepository(session)
        self.milestones = MilestoneRepository(session)
        self.tasks = TaskRepository(session)
        self.invoices = InvoiceRepository(session)
        self.approvals = MilestoneApprovalRepository(session)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _authorize(self, booking: Booking, caller: Caller, operation: str, write: bool = False) -> None:
        """
        Raise ForbiddenException unless the caller may perform the operation.

        Reads are open to the client, the provider and admins; writes to the
        provider and admins.
        """
        if caller.is_admin:
            return
        if write:
            allowed = str(caller.id) == str(booking.provider_id)
        else:
            allowed = booking.involves(caller.id)
        if not allowed:
            logger.warning(f"Caller {caller.id} ({CallerRole(caller.role).value}) denied {operation} on booking {booking.id}")
            raise ForbiddenException("Booking", booking.id, operation)

    def _get_authorized_booking(self, booking_id: Any, caller: Caller, operation: str, write: bool = False) -> Booking:
        booking = self.bookings.get_by_id(booking_id)
        if booking is None:
            raise EntityNotFoundException("Booking", booking_id, operation)
        self._authorize(booking, caller, operation, write)
        return booking

    def _resolve_milestone_context(
            self, milestone: Milestone, caller: Caller, operation: str, write: bool = True
    ) -> Optional[Booking]:
        """
        Resolve and authorize the booking above a milestone.

        A missing booking cannot be authorized against; only admins may
        touch such orphans (the recompute then reports the integrity error).
        """
        booking = self.bookings.get_by_id(milestone.booking_id)
        if booking is None:
            if caller.is_admin:
                return None
            raise IntegrityException(
                EntityType.MILESTONE.value, milestone.id, EntityType.BOOKING.value, milestone.booking_id, operation
            )
        self._authorize(booking, caller, operation, write=write)
        return booking

    def _resolve_task_context(
            self, task_id: Any, caller: Caller, operation: str
    ) -> Tuple[Task, Optional[Milestone], Optional[Booking]]:
        task = self.tasks.get_by_id(task_id)
        if task is None:
            raise EntityNotFoundException("Task", task_id, operation)
        milestone = self.milestones.get_by_id(task.milestone_id)
        if milestone is None:
            if caller.is_admin:
                return task, None, None
            raise IntegrityException(
                EntityType.TASK.value, task.id, EntityType.MILESTONE.value, task.milestone_id, operation
            )
        booking = self._resolve_milestone_context(milestone, caller, operation)
        return task, milestone, booking

    # ------------------------------------------------------------------
    # Input validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(schema: Type[BaseModel], data: Any) -> Dict[str, Any]:
        """Validate raw input against a request schema; only supplied fields are returned."""
        if isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)
        try:
            validated = schema.model_validate(dict(data or {}))
        except PydanticValidationError as e:
            errors: Dict[str, List[str]] = {}
            for error in e.errors():
                field_name = ".".join(str(part) for part in error["loc"]) or "__root__"
                errors.setdefault(field_name, []).append(error["msg"])
            raise ValidationException(f"Invalid {schema.__name__} data", errors)
        values = validated.model_dump(exclude_unset=True)
        if "status" in values and values["status"] is not None:
            values["status"] = WorkStatus(values["status"]).value
        return values

    @staticmethod
    def _assign(entity: Any, values: Mapping[str, Any]) -> List[str]:
        """Set attributes, turning model validation errors into ValidationException."""
        changed = []
        for key, value in values.items():
            if getattr(entity, key) == value:
                continue
            try:
                setattr(entity, key, value)
            except ModelValidationError as e:
                raise ValidationException(e.message, {e.field: [e.message]})
            changed.append(key)
        return changed

    def _normalize_task_values(self, task: Optional[Task], values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Reconcile status and progress_percentage for the configured mode.

        - completed always means 100
        - in completion_ratio mode every other status means 0
        - in task_average mode a manual 100 without an explicit status
          completes the task
        - explicitly leaving completed resets a 100 to 0
        """
        values = dict(values)
        current_status = task.status if task is not None else None
        current_progress = task.progress_percentage if task is not None else 0
        explicit_status = values.get("status")
        manual_progress = values.get("progress_percentage")

        if (
                self.mode is ProgressMode.TASK_AVERAGE
                and manual_progress == 100
                and explicit_status is None
                and current_status != COMPLETED
        ):
            values["status"] = COMPLETED

        status = values.get("status") or current_status or PENDING

        if status == COMPLETED:
            if manual_progress is not None and manual_progress != 100:
                raise ValidationException(
                    "A completed task is always 100%; change its status to record partial progress",
                    {"progress_percentage": ["Must be 100 for a completed task"]},
                )
            values["progress_percentage"] = 100
            if current_status != COMPLETED:
                values["completed_at"] = self.clock()
        else:
            if self.mode is ProgressMode.COMPLETION_RATIO:
                values["progress_percentage"] = 0
            elif manual_progress is None and current_status == COMPLETED and current_progress == 100:
                values["progress_percentage"] = 0
            if current_status == COMPLETED:
                values["completed_at"] = None
        return values

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_progress(self, booking_id: Any, caller: Caller) -> Dict[str, Any]:
        """
        Build the progress read model of a booking.

        Returns:
            Dictionary matching ProgressResponse: milestones with their tasks,
            the cached overall progress, task/milestone counts, overdue count,
            display status, hour totals and risks

        Raises:
            EntityNotFoundException: If the booking doesn't exist
            ForbiddenException: If the caller has no relation to the booking
        """
        booking = self._get_authorized_booking(booking_id, caller, "get_progress")
        now = self.clock()

        milestones = self.milestones.list_by_booking(booking.id)
        tasks = self.tasks.list_by_milestones([m.id for m in milestones])
        tasks_by_milestone: Dict[Any, List[Task]] = {m.id: [] for m in milestones}
        for task in tasks:
            tasks_by_milestone[task.milestone_id].append(task)

        milestone_views = []
        for milestone in milestones:
            milestone_tasks = tasks_by_milestone[milestone.id]
            view = serialize_milestone(milestone, now)
            view["total_tasks"] = len(milestone_tasks)
            view["completed_tasks"] = sum(1 for t in milestone_tasks if t.status == COMPLETED)
            view["tasks"] = [serialize_task(t, now) for t in milestone_tasks]
            milestone_views.append(view)

        summary = summarize_tasks(tasks, now)
        display_status = derive_display_status(booking, self.invoices.get_latest_for_booking(booking.id))

        return {
            "booking_id": booking.id,
            "milestones": milestone_views,
            "overall_progress": booking.project_progress,
            "total_tasks": summary.total_tasks,
            "completed_tasks": summary.completed_tasks,
            "total_milestones": len(milestones),
            "completed_milestones": count_completed_milestones(milestones),
            "overdue_tasks": summary.overdue_tasks,
            "display_status": getattr(display_status, "value", display_status),
            "status_subtitle": status_subtitle(display_status),
            "total_estimated_hours": summary.total_estimated_hours,
            "total_actual_hours": summary.total_actual_hours,
            "risks": [risk.to_dict() for risk in assess_risks(milestones, now)],
        }

    def get_display_status(self, booking_id: Any, caller: Caller) -> Dict[str, Any]:
        """Canonical status of a booking with the raw inputs it was derived from."""
        booking = self._get_authorized_booking(booking_id, caller, "get_display_status")
        invoice = self.invoices.get_latest_for_booking(booking.id)
        display_status = derive_display_status(booking, invoice)
        return {
            "booking_id": booking.id,
            "display_status": getattr(display_status, "value", display_status),
            "status_subtitle": status_subtitle(display_status),
            "canonical": isinstance(display_status, CanonicalStatus),
            "raw_status": booking.status,
            "approval_status": booking.approval_status,
            "invoice_status": invoice.status if invoice is not None else None,
        }

    def summarize_statuses(self, caller: Caller) -> Dict[str, int]:
        """
        Count the caller's bookings per canonical display status.

        Admins see every booking; everyone else the bookings they are the
        client or provider of.
        """
        if caller.is_admin:
            bookings = self.bookings.list()
        else:
            bookings = self.bookings.list_for_user(caller.id)
        invoices = self.invoices.latest_by_booking([b.id for b in bookings])
        return summarize_booking_statuses(bookings, invoices)

    # ------------------------------------------------------------------
    # Task writes
    # ------------------------------------------------------------------

    def mutate_task(self, task_id: Any, data: Any, caller: Caller) -> Task:
        """
        Apply a partial edit to a task and recompute its milestone and booking.

        Args:
            task_id: ID of the task
            data: Mapping (or TaskUpdate) with any of status, title, due_date,
                  description, progress_percentage, estimated_hours, actual_hours
            caller: Acting caller

        Returns:
            The updated task

        Raises:
            ValidationException: On invalid values, transitions, or edits of a
                non-editable task
            EntityNotFoundException: If the task doesn't exist
            ForbiddenException: If the caller may not edit the booking
            IntegrityException: If the task's milestone or booking is missing
        """
        values = self._validate(TaskUpdate, data)
        task, milestone, booking = self._resolve_task_context(task_id, caller, "mutate_task")

        def write(locked: Task) -> List[Change]:
            if not locked.editable:
                blocked = sorted(set(values) - ALWAYS_EDITABLE_FIELDS)
                if blocked:
                    raise ValidationException(
                        f"Task {locked.id} is not editable; only its status can change",
                        {name: ["Task is not editable"] for name in blocked},
                    )
            pending = dict(values)
            if "status" in pending:
                if not check_status_transition(EntityType.TASK.value, locked.id, locked.status, pending["status"]):
                    pending.pop("status")
            changed = self._assign(locked, self._normalize_task_values(locked, pending))
            if not changed:
                return []
            return [task_change(locked, changed, booking.id if booking is not None else None)]

        self.recalculation.on_task_mutated(task.id, write=write, user_id=caller.id)
        return self.get_entity_or_404(self.tasks, task.id)

    def create_task(self, milestone_id: Any, data: Any, caller: Caller) -> Task:
        """
        Create a task under a milestone and recompute upwards.

        Raises:
            ValidationException: On invalid values
            EntityNotFoundException: If the milestone doesn't exist
            ForbiddenException: If the caller may not edit the booking
        """
        values = self._validate(TaskCreate, data)
        milestone = self.milestones.get_by_id(milestone_id)
        if milestone is None:
            raise EntityNotFoundException("Milestone", milestone_id, "create_task")
        self._resolve_milestone_context(milestone, caller, "create_task")
        created: List[Task] = []

        def write(locked: Milestone) -> List[Change]:
            row = self._normalize_task_values(None, values)
            row.setdefault("status", PENDING)
            try:
                task = self.tasks.create({**row, "milestone_id": locked.id})
            except ModelValidationError as e:
                raise ValidationException(e.message, {e.field: [e.message]})
            created[:] = [task]
            return [task_change(task, sorted(row), locked.booking_id)]

        self.recalculation.on_milestone_mutated(milestone.id, write=write, user_id=caller.id)
        return self.get_entity_or_404(self.tasks, created[0].id)

    def delete_task(self, task_id: Any, caller: Caller) -> None:
        """
        Delete a task and recompute the surviving milestone and booking.

        Raises:
            EntityNotFoundException: If the task doesn't exist
            ForbiddenException: If the caller may not edit the booking
        """
        task, milestone, booking = self._resolve_task_context(task_id, caller, "delete_task")

        if milestone is None:
            # Orphan repair by an admin: nothing above the task to recompute
            with self.transaction():
                change = Change.for_deleted(EntityType.TASK, task)
                self.tasks.delete(task)
            self.recalculation.publish_changes([change], caller.id)
            logger.warning(f"Deleted orphaned task {task_id} (milestone {task.milestone_id} missing)")
            return

        def write(locked: Milestone) -> List[Change]:
            target = self.get_entity_or_404(self.tasks, task_id, for_update=True, fresh=True)
            change = Change.for_deleted(EntityType.TASK, target, locked.booking_id)
            self.tasks.delete(target)
            return [change]

        self.recalculation.on_task_deleted(milestone.id, write=write, user_id=caller.id)

    # ------------------------------------------------------------------
    # Milestone writes
    # ------------------------------------------------------------------

    def mutate_milestone(self, milestone_id: Any, data: Any, caller: Caller) -> Milestone:
        """
        Apply a partial edit to a milestone and recompute its booking.

        Args:
            milestone_id: ID of the milestone
            data: Mapping (or MilestoneUpdate) with any of title, status, weight,
                  due_date, description, order_index, estimated_hours, actual_hours
            caller: Acting caller

        Raises:
            ValidationException: On invalid values (weight <= 0, derived fields)
            EntityNotFoundException: If the milestone doesn't exist
            ForbiddenException: If the caller may not edit the booking
        """
        values = self._validate(MilestoneUpdate, data)
        milestone = self.milestones.get_by_id(milestone_id)
        if milestone is None:
            raise EntityNotFoundException("Milestone", milestone_id, "mutate_milestone")
        self._resolve_milestone_context(milestone, caller, "mutate_milestone")

        def write(locked: Milestone) -> List[Change]:
            pending = dict(values)
            if "status" in pending:
                if not check_status_transition(
                        EntityType.MILESTONE.value, locked.id, locked.status, pending["status"]
                ):
                    pending.pop("status")
                else:
                    pending["completed_at"] = self.clock() if pending["status"] == COMPLETED else None
            changed = self._assign(locked, pending)
            return [milestone_change(locked, changed)] if changed else []

        self.recalculation.on_milestone_mutated(milestone.id, write=write, user_id=caller.id)
        return self.get_entity_or_404(self.milestones, milestone.id)

    def approve_milestone(
            self, milestone_id: Any, action: Any, feedback: Optional[str], caller: Caller
    ) -> Tuple[Milestone, MilestoneApproval]:
        """
        Record a review of a milestone by one of the booking's parties.

        Approving completes the milestone and stamps ``completed_at``;
        approving an already completed milestone only records the review.
        Rejecting moves the milestone to ``rejected`` and is refused once it
        is completed. The review is stored with its feedback and the booking
        is recomputed in the same commit.

        Args:
            milestone_id: ID of the milestone
            action: ``approve`` or ``reject``
            feedback: Optional comment for the provider
            caller: The booking's client, its provider, or an admin

        Returns:
            The milestone and the stored review

        Raises:
            ValidationException: On an unknown action or a reject of a completed milestone
            InvalidStatusTransitionException: If the milestone is cancelled
            EntityNotFoundException: If the milestone doesn't exist
            ForbiddenException: If the caller has no relation to the booking
        """
        values = self._validate(MilestoneApprovalRequest, {"action": action, "feedback": feedback})
        review = ReviewAction(values["action"])
        outcome = ReviewOutcome.APPROVED if review is ReviewAction.APPROVE else ReviewOutcome.REJECTED
        milestone = self.milestones.get_by_id(milestone_id)
        if milestone is None:
            raise EntityNotFoundException("Milestone", milestone_id, "approve_milestone")
        self._resolve_milestone_context(milestone, caller, "approve_milestone", write=False)
        recorded: List[MilestoneApproval] = []

        def write(locked: Milestone) -> List[Change]:
            if locked.status == COMPLETED:
                if review is ReviewAction.REJECT:
                    raise ValidationException(
                        f"Milestone {locked.id} is already completed",
                        {"action": ["A completed milestone cannot be rejected"]},
                        {"milestone_id": locked.id},
                    )
                changed: List[str] = []
            else:
                new_status = COMPLETED if review is ReviewAction.APPROVE else outcome.value
                check_status_transition(EntityType.MILESTONE.value, locked.id, locked.status, new_status)
                updates: Dict[str, Any] = {"status": new_status}
                if review is ReviewAction.APPROVE:
                    updates["completed_at"] = self.clock()
                changed = self._assign(locked, updates)
            recorded[:] = [
                self.approvals.create({
                    "milestone_id": locked.id,
                    "user_id": str(caller.id),
                    "status": outcome.value,
                    "comment": values.get("feedback"),
                })
            ]
            return [milestone_change(locked, changed)] if changed else []

        self.recalculation.on_milestone_mutated(milestone.id, write=write, user_id=caller.id)
        self._log_operation("approve_milestone", f"milestone {milestone.id} {outcome.value} by {caller.id}")
        return (
            self.get_entity_or_404(self.milestones, milestone.id),
            self.get_entity_or_404(self.approvals, recorded[0].id),
        )

    def list_milestone_approvals(self, milestone_id: Any, caller: Caller) -> List[MilestoneApproval]:
        """Reviews of a milestone, oldest first. Open to every booking party."""
        milestone = self.milestones.get_by_id(milestone_id)
        if milestone is None:
            raise EntityNotFoundException("Milestone", milestone_id, "list_milestone_approvals")
        self._resolve_milestone_context(milestone, caller, "list_milestone_approvals", write=False)
        return self.approvals.list_by_milestone(milestone.id)

    def create_milestone(self, booking_id: Any, data: Any, caller: Caller) -> Milestone:
        """
        Create a milestone under a booking (appended last unless
        ``order_index`` is given) and recompute the booking.
        """
        values = self._validate(MilestoneCreate, data)
        booking = self._get_authorized_booking(booking_id, caller, "create_milestone", write=True)
        created: List[Milestone] = []

        def write(locked: Booking) -> List[Change]:
            row = dict(values)
            if row.get("order_index") is None:
                row["order_index"] = self.milestones.next_order_index(locked.id)
            try:
                milestone = self.milestones.create({**row, "booking_id": locked.id})
            except ModelValidationError as e:
                raise ValidationException(e.message, {e.field: [e.message]})
            created[:] = [milestone]
            return [milestone_change(milestone, sorted(row))]

        self.recalculation.recompute(booking.id, write=write, user_id=caller.id)
        return self.get_entity_or_404(self.milestones, created[0].id)

    def delete_milestone(self, milestone_id: Any, caller: Caller) -> None:
        """
        Delete a milestone with its tasks and recompute the booking.

        Raises:
            EntityNotFoundException: If the milestone doesn't exist
            ForbiddenException: If the caller may not edit the booking
        """
        milestone = self.milestones.get_by_id(milestone_id)
        if milestone is None:
            raise EntityNotFoundException("Milestone", milestone_id, "delete_milestone")
        booking = self._resolve_milestone_context(milestone, caller, "delete_milestone")

        if booking is None:
            with self.transaction():
                changes = [Change.for_deleted(EntityType.TASK, t) for t in self.tasks.list_by_milestone(milestone.id)]
                changes.append(Change.for_deleted(EntityType.MILESTONE, milestone))
                self.milestones.delete(milestone)
            self.recalculation.publish_changes(changes, caller.id)
            logger.warning(f"Deleted orphaned milestone {milestone_id} (booking {milestone.booking_id} missing)")
            return

        def write(locked: Booking) -> List[Change]:
            target = self.get_entity_or_404(self.milestones, milestone_id, for_update=True, fresh=True)
            changes = [
                Change.for_deleted(EntityType.TASK, t, locked.id)
                for t in self.tasks.list_by_milestone(target.id, fresh=True)
            ]
            changes.append(Change.for_deleted(EntityType.MILESTONE, target, locked.id))
            self.milestones.delete(target)
            return changes

        self.recalculation.on_milestone_deleted(booking.id, write=write, user_id=caller.id)

    def seed_default_milestones(self, booking_id: Any, caller: Caller) -> List[Milestone]:
        """
        Create the default four-milestone plan on a booking without milestones.

        Raises:
            EntityNotFoundException: If the booking doesn't exist
            ForbiddenException: If the caller is not the provider or an admin
            ValidationException: If the booking already has milestones
        """
        booking = self._get_authorized_booking(booking_id, caller, "seed_default_milestones", write=True)

        def write(locked: Booking) -> List[Change]:
            if self.milestones.count(booking_id=locked.id) > 0:
                raise ValidationException(
                    f"Milestones already exist for booking {locked.id}",
                    {"booking_id": ["Booking already has milestones"]},
                    {"booking_id": locked.id},
                )
            changes: List[Change] = []
            for row in build_default_plan(locked.id, self.clock()):
                task_rows = row.pop("tasks")
                milestone = self.milestones.create(row)
                changes.append(milestone_change(milestone, sorted(row)))
                for task_row in task_rows:
                    task = self.tasks.create({**task_row, "milestone_id": milestone.id})
                    changes.append(task_change(task, sorted(task_row), locked.id))
            return changes

        self.recalculation.recompute(booking.id, write=write, user_id=caller.id)
        self._log_operation("seed_default_milestones", f"booking {booking.id}")
        return self.milestones.list_by_booking(booking.id)

    def recompute(self, booking_id: Any, caller: Caller) -> RecomputeResult:
        """Recompute all cached progress of a booking on request."""
        booking = self._get_authorized_booking(booking_id, caller, "recompute", write=True)
        return self.recalculation.recompute(booking.id, user_id=caller.id)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, booking_id: Any, callback: EventHandler, caller: Caller) -> Subscription:
        """
        Subscribe to change events of one booking.

        Raises:
            EntityNotFoundException: If the booking doesn't exist
            ForbiddenException: If the caller has no relation to the booking
        """
        booking = self._get_authorized_booking(booking_id, caller, "subscribe")
        return self.event_bus.subscribe(booking.id, callback)

    def unsubscribe(self, subscription: Subscription) -> bool:
        return self.event_bus.unsubscribe(subscription)

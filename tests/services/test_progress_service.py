# tests/services/test_progress_service.py
from datetime import datetime, timedelta, timezone

import pytest

from booking_progress.core.exceptions import (
    EntityNotFoundException,
    ForbiddenException,
    IntegrityException,
    InvalidStatusTransitionException,
    ValidationException,
)
from booking_progress.db.models import Booking, Milestone, Task
from booking_progress.db.models.enums import ProgressMode
from booking_progress.services.overdue import as_utc
from booking_progress.services.progress_service import ProgressService, check_status_transition

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def plan(make_booking, make_milestone, make_task):
    """Booking with milestone A (two tasks, one completed) and empty milestone B."""
    booking = make_booking()
    milestone_a = make_milestone(booking.id, title="A", order_index=0)
    milestone_b = make_milestone(booking.id, title="B", order_index=1)
    done = make_task(milestone_a.id, title="Done", status="completed")
    open_task = make_task(milestone_a.id, title="Open", estimated_hours=3)
    return {"booking": booking, "a": milestone_a, "b": milestone_b, "done": done, "open": open_task}


@pytest.fixture
def average_service(db, event_bus):
    return ProgressService(db, event_bus=event_bus, mode=ProgressMode.TASK_AVERAGE, clock=lambda: FIXED_NOW)


# --- Reads ---

def test_get_progress_read_model(plan, progress_service, provider_caller):
    progress_service.recompute(plan["booking"].id, provider_caller)

    progress = progress_service.get_progress(plan["booking"].id, provider_caller)

    assert progress["overall_progress"] == 25
    assert progress["total_tasks"] == 2
    assert progress["completed_tasks"] == 1
    assert progress["total_milestones"] == 2
    assert progress["completed_milestones"] == 0
    assert progress["overdue_tasks"] == 0
    assert progress["display_status"] == "in_production"
    assert progress["status_subtitle"] == "Active development in progress"
    assert progress["total_estimated_hours"] == 3.0
    assert [m["title"] for m in progress["milestones"]] == ["A", "B"]
    assert progress["milestones"][0]["progress_percentage"] == 50
    assert progress["milestones"][0]["total_tasks"] == 2
    assert progress["milestones"][1]["tasks"] == []


def test_client_can_read(plan, progress_service, client_caller):
    assert progress_service.get_progress(plan["booking"].id, client_caller)["booking_id"] == plan["booking"].id


def test_stranger_is_forbidden(plan, progress_service, stranger_caller):
    with pytest.raises(ForbiddenException):
        progress_service.get_progress(plan["booking"].id, stranger_caller)


def test_admin_can_read_any_booking(plan, progress_service, admin_caller):
    assert progress_service.get_progress(plan["booking"].id, admin_caller)["total_tasks"] == 2


def test_unknown_booking_is_not_found(progress_service, admin_caller):
    with pytest.raises(EntityNotFoundException):
        progress_service.get_progress(4242, admin_caller)


def test_overdue_tasks_and_risks(make_booking, make_milestone, make_task, progress_service, provider_caller):
    booking = make_booking()
    late = make_milestone(booking.id, title="Late", order_index=0, due_date=FIXED_NOW - timedelta(days=1))
    make_milestone(booking.id, title="Next", order_index=1)
    make_task(late.id, due_date=FIXED_NOW - timedelta(days=2))

    progress = progress_service.get_progress(booking.id, provider_caller)

    assert progress["overdue_tasks"] == 1
    assert progress["milestones"][0]["is_overdue"] is True
    assert [r["id"] for r in progress["risks"]] == ["overdue_milestones", "blocked_dependencies"]


def test_display_status(make_booking, make_invoice, progress_service, client_caller):
    booking = make_booking(status="approved", approval_status="approved")
    make_invoice(booking.id, status="issued")

    result = progress_service.get_display_status(booking.id, client_caller)

    assert result["display_status"] == "ready_to_launch"
    assert result["canonical"] is True
    assert result["invoice_status"] == "issued"


# --- Task mutations ---

def test_completing_task_recomputes_parents(db, plan, progress_service, provider_caller):
    task = progress_service.mutate_task(plan["open"].id, {"status": "completed"}, provider_caller)

    assert task.status == "completed"
    assert task.progress_percentage == 100
    assert task.completed_at is not None
    db.expire_all()
    assert db.get(Milestone, plan["a"].id).progress_percentage == 100
    assert db.get(Booking, plan["booking"].id).project_progress == 50


def test_reopening_completed_task_resets_progress(db, plan, progress_service, provider_caller):
    task = progress_service.mutate_task(plan["done"].id, {"status": "in_progress"}, provider_caller)

    assert task.progress_percentage == 0
    assert task.completed_at is None
    db.expire_all()
    assert db.get(Milestone, plan["a"].id).progress_percentage == 0


def test_client_cannot_mutate(plan, progress_service, client_caller):
    with pytest.raises(ForbiddenException):
        progress_service.mutate_task(plan["open"].id, {"status": "completed"}, client_caller)


def test_unknown_task_is_not_found(progress_service, provider_caller):
    with pytest.raises(EntityNotFoundException):
        progress_service.mutate_task(999, {"status": "completed"}, provider_caller)


@pytest.mark.parametrize(
    "data",
    [
        {"status": "finished"},
        {"progress_percentage": 101},
        {"estimated_hours": -1},
        {"title": ""},
        {"unknown_field": 1},
    ],
)
def test_invalid_task_values(plan, progress_service, provider_caller, data):
    with pytest.raises(ValidationException):
        progress_service.mutate_task(plan["open"].id, data, provider_caller)


def test_cancelled_task_only_reopens_to_pending(db, plan, progress_service, provider_caller):
    progress_service.mutate_task(plan["open"].id, {"status": "cancelled"}, provider_caller)

    with pytest.raises(InvalidStatusTransitionException):
        progress_service.mutate_task(plan["open"].id, {"status": "completed"}, provider_caller)

    task = progress_service.mutate_task(plan["open"].id, {"status": "pending"}, provider_caller)
    assert task.status == "pending"


def test_same_status_is_a_noop(db, plan, progress_service, provider_caller, record_events):
    received = record_events(plan["booking"].id)
    before = db.get(Task, plan["done"].id).version

    task = progress_service.mutate_task(plan["done"].id, {"status": "completed"}, provider_caller)

    assert task.version == before
    assert [e.entity_type for e in received] == ["milestone", "booking"]


def test_check_status_transition():
    assert check_status_transition("task", 1, "pending", "pending") is False
    assert check_status_transition("task", 1, "completed", "pending") is True
    assert check_status_transition("task", 1, "cancelled", "pending") is True
    with pytest.raises(InvalidStatusTransitionException):
        check_status_transition("task", 1, "cancelled", "in_progress")


def test_non_editable_task_accepts_only_status(make_booking, make_milestone, make_task, progress_service, provider_caller):
    booking = make_booking()
    milestone = make_milestone(booking.id)
    task = make_task(milestone.id, editable=False)

    with pytest.raises(ValidationException):
        progress_service.mutate_task(task.id, {"title": "Renamed"}, provider_caller)

    updated = progress_service.mutate_task(task.id, {"status": "completed"}, provider_caller)
    assert updated.status == "completed"


def test_manual_progress_ignored_in_completion_ratio_mode(plan, progress_service, provider_caller):
    task = progress_service.mutate_task(plan["open"].id, {"progress_percentage": 60}, provider_caller)
    assert task.progress_percentage == 0


def test_manual_progress_in_task_average_mode(db, plan, average_service, provider_caller):
    task = average_service.mutate_task(plan["open"].id, {"progress_percentage": 60}, provider_caller)

    assert task.status == "pending"
    assert task.progress_percentage == 60
    db.expire_all()
    assert db.get(Milestone, plan["a"].id).progress_percentage == 80


def test_manual_100_completes_task_in_task_average_mode(plan, average_service, provider_caller):
    task = average_service.mutate_task(plan["open"].id, {"progress_percentage": 100}, provider_caller)
    assert task.status == "completed"


def test_partial_progress_on_completed_task_is_rejected(plan, average_service, provider_caller):
    with pytest.raises(ValidationException):
        average_service.mutate_task(plan["done"].id, {"progress_percentage": 40}, provider_caller)


def test_create_and_delete_task(db, plan, progress_service, provider_caller, record_events):
    task = progress_service.create_task(plan["b"].id, {"title": "Write brief"}, provider_caller)
    db.expire_all()
    assert task.milestone_id == plan["b"].id
    assert db.get(Milestone, plan["b"].id).progress_percentage == 0

    received = record_events(plan["booking"].id)
    progress_service.delete_task(plan["open"].id, provider_caller)

    db.expire_all()
    assert db.get(Task, plan["open"].id) is None
    assert db.get(Milestone, plan["a"].id).progress_percentage == 100
    assert db.get(Booking, plan["booking"].id).project_progress == 50
    assert received[0].deleted is True
    assert received[0].entity_id == plan["open"].id


def test_orphaned_task_is_integrity_error_for_non_admin(make_task, progress_service, provider_caller):
    orphan = make_task(777)
    with pytest.raises(IntegrityException):
        progress_service.mutate_task(orphan.id, {"status": "completed"}, provider_caller)


def test_admin_write_to_orphan_is_kept(db, make_task, progress_service, admin_caller):
    orphan = make_task(777)
    with pytest.raises(IntegrityException):
        progress_service.mutate_task(orphan.id, {"status": "completed"}, admin_caller)
    db.expire_all()
    assert db.get(Task, orphan.id).status == "completed"


# --- Milestone mutations ---

def test_mutate_milestone_weight_recomputes_booking(db, plan, progress_service, provider_caller):
    progress_service.recompute(plan["booking"].id, provider_caller)
    milestone = progress_service.mutate_milestone(plan["a"].id, {"weight": 3}, provider_caller)

    assert milestone.weight == 3.0
    db.expire_all()
    # (50 * 3 + 0 * 1) / 4
    assert db.get(Booking, plan["booking"].id).project_progress == 38


@pytest.mark.parametrize("data", [{"weight": 0}, {"weight": -2}, {"progress_percentage": 90}])
def test_invalid_milestone_values(plan, progress_service, provider_caller, data):
    with pytest.raises(ValidationException):
        progress_service.mutate_milestone(plan["a"].id, data, provider_caller)


def test_create_milestone_appends(plan, progress_service, provider_caller):
    milestone = progress_service.create_milestone(plan["booking"].id, {"title": "C", "weight": 2}, provider_caller)
    assert milestone.order_index == 2
    assert milestone.progress_percentage == 0


def test_delete_milestone_cascades(db, plan, progress_service, provider_caller, record_events):
    received = record_events(plan["booking"].id)

    progress_service.delete_milestone(plan["a"].id, provider_caller)

    db.expire_all()
    assert db.get(Milestone, plan["a"].id) is None
    assert db.get(Task, plan["done"].id) is None
    assert db.get(Booking, plan["booking"].id).project_progress == 0
    assert [(e.entity_type, e.deleted) for e in received] == [
        ("task", True),
        ("task", True),
        ("milestone", True),
        ("milestone", False),
        ("booking", False),
    ]


# --- Seeding ---

def test_seed_default_milestones(db, make_booking, progress_service, provider_caller):
    booking = make_booking()

    milestones = progress_service.seed_default_milestones(booking.id, provider_caller)

    assert [m.title for m in milestones] == ["Planning", "Content Creation", "Posting", "Reporting"]
    assert all(len(m.tasks) == 3 for m in milestones)
    assert all(t.status == "pending" for m in milestones for t in m.tasks)
    assert milestones[0].due_date is not None


def test_seed_twice_is_rejected(make_booking, progress_service, provider_caller):
    booking = make_booking()
    progress_service.seed_default_milestones(booking.id, provider_caller)
    with pytest.raises(ValidationException):
        progress_service.seed_default_milestones(booking.id, provider_caller)


def test_client_cannot_seed(make_booking, progress_service, client_caller):
    booking = make_booking()
    with pytest.raises(ForbiddenException):
        progress_service.seed_default_milestones(booking.id, client_caller)


# --- Subscriptions ---

def test_subscribe_requires_relation(plan, progress_service, client_caller, stranger_caller):
    received = []
    subscription = progress_service.subscribe(plan["booking"].id, received.append, client_caller)

    with pytest.raises(ForbiddenException):
        progress_service.subscribe(plan["booking"].id, received.append, stranger_caller)

    assert progress_service.unsubscribe(subscription) is True
    assert progress_service.unsubscribe(subscription) is False


# --- Status summary ---

def test_summarize_statuses(make_booking, make_invoice, progress_service, provider_caller, admin_caller):
    make_booking()
    make_booking(status="completed")
    approved = make_booking(status="approved", approval_status="approved")
    make_invoice(approved.id, status="paid")
    make_booking(client_id="client-2", provider_id="provider-2", status="on_hold", approval_status="pending")

    mine = progress_service.summarize_statuses(provider_caller)
    everything = progress_service.summarize_statuses(admin_caller)

    assert mine["total"] == 3
    assert mine["in_production"] == 1
    assert mine["delivered"] == 1
    assert mine["ready_to_launch"] == 1
    assert mine["on_hold"] == 0
    assert everything["total"] == 4
    assert everything["on_hold"] == 1


# --- Milestone reviews ---

def test_client_approval_completes_the_milestone(db, plan, progress_service, client_caller, record_events):
    received = record_events(plan["booking"].id)

    milestone, approval = progress_service.approve_milestone(plan["a"].id, "approve", "Looks great", client_caller)

    assert milestone.status == "completed"
    assert as_utc(milestone.completed_at) == FIXED_NOW
    assert approval.status == "approved"
    assert approval.user_id == client_caller.id
    assert approval.comment == "Looks great"
    milestone_events = [e for e in received if e.entity_type == "milestone"]
    assert "status" in milestone_events[0].changed_fields
    assert milestone_events[0].new_value["status"] == "completed"
    assert received[-1].entity_type == "booking"
    assert progress_service.get_progress(plan["booking"].id, client_caller)["completed_milestones"] == 1


def test_approving_a_completed_milestone_only_records_the_review(
        plan, progress_service, client_caller, provider_caller
):
    progress_service.approve_milestone(plan["a"].id, "approve", None, client_caller)
    first_completed_at = progress_service.get_entity_or_404(progress_service.milestones, plan["a"].id).completed_at

    milestone, _ = progress_service.approve_milestone(plan["a"].id, "approve", "Again", provider_caller)

    assert milestone.status == "completed"
    assert milestone.completed_at == first_completed_at
    reviews = progress_service.list_milestone_approvals(plan["a"].id, client_caller)
    assert [(r.status, r.comment) for r in reviews] == [("approved", None), ("approved", "Again")]


def test_rejecting_a_completed_milestone_is_refused(plan, progress_service, client_caller):
    progress_service.approve_milestone(plan["a"].id, "approve", None, client_caller)

    with pytest.raises(ValidationException) as exc_info:
        progress_service.approve_milestone(plan["a"].id, "reject", "Too late", client_caller)

    assert "action" in exc_info.value.details["validation_errors"]
    # The refused review is not stored
    assert len(progress_service.list_milestone_approvals(plan["a"].id, client_caller)) == 1


def test_rejection_can_be_reworked(plan, progress_service, client_caller, provider_caller):
    milestone, approval = progress_service.approve_milestone(plan["b"].id, "reject", "Wrong palette", client_caller)

    assert milestone.status == "rejected"
    assert milestone.completed_at is None
    assert approval.status == "rejected"

    reworked = progress_service.mutate_milestone(plan["b"].id, {"status": "in_progress"}, provider_caller)
    assert reworked.status == "in_progress"


def test_review_validation_and_access(plan, progress_service, client_caller, stranger_caller, provider_caller):
    with pytest.raises(ValidationException):
        progress_service.approve_milestone(plan["a"].id, "maybe", None, client_caller)
    with pytest.raises(ForbiddenException):
        progress_service.approve_milestone(plan["a"].id, "approve", None, stranger_caller)
    with pytest.raises(EntityNotFoundException):
        progress_service.approve_milestone(4242, "approve", None, client_caller)

    progress_service.mutate_milestone(plan["b"].id, {"status": "cancelled"}, provider_caller)
    with pytest.raises(InvalidStatusTransitionException):
        progress_service.approve_milestone(plan["b"].id, "approve", None, client_caller)


def test_completing_a_milestone_by_edit_stamps_completed_at(plan, progress_service, provider_caller):
    completed = progress_service.mutate_milestone(plan["b"].id, {"status": "completed"}, provider_caller)
    assert as_utc(completed.completed_at) == FIXED_NOW

    reopened = progress_service.mutate_milestone(plan["b"].id, {"status": "in_progress"}, provider_caller)
    assert reopened.completed_at is None

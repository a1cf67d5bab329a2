# tests/services/test_overdue.py
from datetime import datetime, timedelta, timezone

from booking_progress.services.overdue import as_utc, is_overdue

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def test_past_due_pending_task_is_overdue():
    assert is_overdue({"status": "pending", "due_date": NOW - timedelta(hours=1)}, NOW)


def test_completing_clears_overdue_without_other_changes():
    task = {"status": "pending", "due_date": NOW - timedelta(days=3)}
    assert is_overdue(task, NOW)

    task["status"] = "completed"
    assert not is_overdue(task, NOW)


def test_becomes_overdue_purely_with_time():
    task = {"status": "in_progress", "due_date": NOW}
    assert not is_overdue(task, NOW - timedelta(seconds=1))
    assert not is_overdue(task, NOW)
    assert is_overdue(task, NOW + timedelta(seconds=1))


def test_no_due_date_is_never_overdue():
    assert not is_overdue({"status": "pending", "due_date": None}, NOW)


def test_naive_due_dates_are_utc():
    naive = datetime(2024, 6, 1, 11, 0)
    assert as_utc(naive) == datetime(2024, 6, 1, 11, 0, tzinfo=timezone.utc)
    assert is_overdue({"status": "pending", "due_date": naive}, NOW)


def test_iso_strings_are_parsed():
    assert is_overdue({"status": "on_hold", "due_date": "2024-05-31T00:00:00+00:00"}, NOW)


def test_model_objects(make_booking, make_milestone):
    booking = make_booking()
    milestone = make_milestone(booking.id, due_date=NOW - timedelta(days=1))
    assert is_overdue(milestone, NOW)


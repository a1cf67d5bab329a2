# tests/services/test_status_inference.py
import logging

import pytest

from booking_progress.db.models.enums import CanonicalStatus
from booking_progress.services.status_inference import (
    STATUS_RULES,
    derive_display_status,
    status_subtitle,
    summarize_booking_statuses,
)


def booking(status, approval_status=None, id=1):
    return {"id": id, "status": status, "approval_status": approval_status}


@pytest.mark.parametrize(
    "status, approval_status, invoice_status, expected",
    [
        ("completed", None, None, CanonicalStatus.DELIVERED),
        ("in_progress", None, None, CanonicalStatus.IN_PRODUCTION),
        ("pending", None, "issued", CanonicalStatus.READY_TO_LAUNCH),
        ("pending", None, "paid", CanonicalStatus.READY_TO_LAUNCH),
        ("pending", "approved", None, CanonicalStatus.APPROVED),
        ("approved", None, None, CanonicalStatus.APPROVED),
        ("declined", None, None, CanonicalStatus.CANCELLED),
        ("pending", "declined", None, CanonicalStatus.CANCELLED),
        ("cancelled", None, None, CanonicalStatus.CANCELLED),
        ("on_hold", None, None, CanonicalStatus.ON_HOLD),
        ("rescheduled", None, None, CanonicalStatus.PENDING_REVIEW),
        ("pending", "pending", "draft", CanonicalStatus.PENDING_REVIEW),
    ],
)
def test_rule_table(status, approval_status, invoice_status, expected):
    invoice = {"status": invoice_status} if invoice_status else None
    assert derive_display_status(booking(status, approval_status), invoice) is expected


def test_completed_wins_over_approval_and_unpaid_invoice():
    result = derive_display_status(booking("completed", "approved"), {"status": "issued"})
    assert result is CanonicalStatus.DELIVERED


def test_in_progress_wins_over_paid_invoice():
    result = derive_display_status(booking("in_progress", "approved"), {"status": "paid"})
    assert result is CanonicalStatus.IN_PRODUCTION


def test_issued_invoice_wins_over_approval():
    result = derive_display_status(booking("approved", "approved"), {"status": "issued"})
    assert result is CanonicalStatus.READY_TO_LAUNCH


def test_approval_wins_over_decline():
    assert derive_display_status(booking("declined", "approved")) is CanonicalStatus.APPROVED


def test_raw_values_are_normalized():
    assert derive_display_status(booking("  In_Progress ")) is CanonicalStatus.IN_PRODUCTION


def test_unknown_status_passes_through_and_is_logged(caplog):
    with caplog.at_level(logging.WARNING, logger="booking_progress.services.status_inference"):
        result = derive_display_status(booking("archived"))

    assert result == "archived"
    assert not isinstance(result, CanonicalStatus)
    assert "archived" in caplog.text


def test_empty_status_falls_back_to_pending_review():
    assert derive_display_status(booking(None)) is CanonicalStatus.PENDING_REVIEW


def test_raw_canonical_value_maps_to_enum():
    assert derive_display_status(booking("ready_to_launch")) is CanonicalStatus.READY_TO_LAUNCH


def test_model_objects_are_accepted(make_booking, make_invoice):
    record = make_booking(status="pending", approval_status="pending")
    invoice = make_invoice(record.id, status="paid")
    assert derive_display_status(record, invoice) is CanonicalStatus.READY_TO_LAUNCH


def test_rule_table_order_is_stable():
    assert [rule.name for rule in STATUS_RULES] == [
        "completed",
        "in_progress",
        "invoice_issued_or_paid",
        "approved",
        "declined_or_cancelled",
        "on_hold",
        "awaiting_review",
    ]


def test_status_subtitle():
    assert status_subtitle(CanonicalStatus.DELIVERED) == "Project successfully delivered"
    assert status_subtitle("on_hold") == "Project temporarily on hold"
    assert status_subtitle("archived") == "Status unknown"


def test_summarize_booking_statuses():
    bookings = [
        booking("completed", id=1),
        booking("in_progress", id=2),
        booking("pending", id=3),
        booking("pending", id=4),
        booking("archived", id=5),
    ]
    counts = summarize_booking_statuses(bookings, {3: {"status": "issued"}})

    assert counts["total"] == 5
    assert counts["delivered"] == 1
    assert counts["in_production"] == 1
    assert counts["ready_to_launch"] == 1
    assert counts["pending_review"] == 1
    assert counts["other"] == 1
    assert counts["cancelled"] == 0

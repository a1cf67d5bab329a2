# File: booking_progress/services/status_inference.py

"""
Canonical status inference for bookings.

A booking's user-facing status is derived on every read from three raw
inputs: the booking's workflow ``status``, its ``approval_status`` and the
state of its latest invoice. The rules form an ordered table and the
first matching rule wins; the order is part of the contract (a completed
booking is "delivered" even if it also has an issued invoice).

Nothing here writes to the booking.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Union

from booking_progress.db.models.enums import CanonicalStatus, InvoiceStatus

logger = logging.getLogger(__name__)

DisplayStatus = Union[CanonicalStatus, str]

LAUNCH_INVOICE_STATUSES = frozenset({InvoiceStatus.ISSUED.value, InvoiceStatus.PAID.value})
CANONICAL_VALUES = frozenset(status.value for status in CanonicalStatus)


class StatusInputs(NamedTuple):
    status: str
    approval_status: str
    invoice_status: Optional[str]


class StatusRule(NamedTuple):
    name: str
    matches: Callable[[StatusInputs], bool]
    result: CanonicalStatus


STATUS_RULES: List[StatusRule] = [
    StatusRule("completed", lambda s: s.status == "completed", CanonicalStatus.DELIVERED),
    StatusRule("in_progress", lambda s: s.status == "in_progress", CanonicalStatus.IN_PRODUCTION),
    StatusRule(
        "invoice_issued_or_paid",
        lambda s: s.invoice_status in LAUNCH_INVOICE_STATUSES,
        CanonicalStatus.READY_TO_LAUNCH,
    ),
    StatusRule(
        "approved",
        lambda s: s.approval_status == "approved" or s.status == "approved",
        CanonicalStatus.APPROVED,
    ),
    StatusRule(
        "declined_or_cancelled",
        lambda s: s.status in ("declined", "cancelled") or s.approval_status == "declined",
        CanonicalStatus.CANCELLED,
    ),
    StatusRule("on_hold", lambda s: s.status == "on_hold", CanonicalStatus.ON_HOLD),
    StatusRule(
        "awaiting_review",
        lambda s: s.status in ("rescheduled", "pending"),
        CanonicalStatus.PENDING_REVIEW,
    ),
]

STATUS_SUBTITLES: Dict[CanonicalStatus, str] = {
    CanonicalStatus.DELIVERED: "Project successfully delivered",
    CanonicalStatus.IN_PRODUCTION: "Active development in progress",
    CanonicalStatus.READY_TO_LAUNCH: "All prerequisites met, ready to launch",
    CanonicalStatus.APPROVED: "Approved and ready for next steps",
    CanonicalStatus.PENDING_REVIEW: "Awaiting provider approval",
    CanonicalStatus.CANCELLED: "Project cancelled",
    CanonicalStatus.ON_HOLD: "Project temporarily on hold",
}


def _read(source: Any, name: str) -> Any:
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def _normalize(value: Any) -> str:
    if value is None:
        return ""
    return str(getattr(value, "value", value)).strip().lower()


def derive_display_status(booking: Any, invoice: Any = None) -> DisplayStatus:
    """
    Map raw booking/approval/invoice state to a canonical status.

    Args:
        booking: Booking model or mapping with ``status``/``approval_status``
        invoice: Latest invoice of the booking, if any

    Returns:
        The first matching CanonicalStatus, or the raw status itself when no
        rule applies (``pending_review`` for an empty raw status)
    """
    inputs = StatusInputs(
        status=_normalize(_read(booking, "status")),
        approval_status=_normalize(_read(booking, "approval_status")),
        invoice_status=_normalize(_read(invoice, "status")) if invoice is not None else None,
    )
    for rule in STATUS_RULES:
        if rule.matches(inputs):
            return rule.result

    if not inputs.status:
        return CanonicalStatus.PENDING_REVIEW
    if inputs.status in CANONICAL_VALUES:
        # Raw value already written in canonical form by another collaborator
        return CanonicalStatus(inputs.status)
    logger.warning(
        f"Unrecognized booking state for booking {_read(booking, 'id')}: "
        f"status={inputs.status!r}, approval_status={inputs.approval_status!r}; passing raw status through"
    )
    return inputs.status


def status_subtitle(status: DisplayStatus) -> str:
    try:
        return STATUS_SUBTITLES[CanonicalStatus(status)]
    except ValueError:
        return "Status unknown"


def summarize_booking_statuses(
    bookings: Iterable[Any], invoices_by_booking: Optional[Mapping[Any, Any]] = None
) -> Dict[str, int]:
    """
    Count bookings per canonical status.

    Args:
        bookings: Bookings to classify
        invoices_by_booking: Latest invoice keyed by booking id

    Returns:
        ``total``, one key per canonical status, and ``other`` for pass-through
        statuses
    """
    invoices_by_booking = invoices_by_booking or {}
    counts: Dict[str, int] = {"total": 0, "other": 0}
    counts.update({status.value: 0 for status in CanonicalStatus})
    for booking in bookings:
        counts["total"] += 1
        status = derive_display_status(booking, invoices_by_booking.get(_read(booking, "id")))
        if isinstance(status, CanonicalStatus):
            counts[status.value] += 1
        else:
            counts["other"] += 1
    return counts

# File: booking_progress/db/models/enums.py
"""
Enumeration types for the booking progress engine.

Raw persisted status values stay plain strings on the models so that
unknown values written by other collaborators can still be read; these
enums define the values the engine itself understands and emits.
"""

from enum import Enum


class WorkStatus(str, Enum):
    """Status shared by tasks and milestones."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class ReviewAction(str, Enum):
    """Decision a booking party takes on a delivered milestone."""

    APPROVE = "approve"
    REJECT = "reject"


class ReviewOutcome(str, Enum):
    """Recorded result of a milestone review. A rejected milestone keeps it as its status."""

    APPROVED = "approved"
    REJECTED = "rejected"


class BookingStatus(str, Enum):
    """Raw workflow status of a booking, as written by the approval workflow."""

    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"
    DECLINED = "declined"
    RESCHEDULED = "rescheduled"


class ApprovalStatus(str, Enum):
    """Separate approval workflow status of a booking."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class InvoiceStatus(str, Enum):
    """Invoice states relevant to status inference."""

    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    VOID = "void"


class CanonicalStatus(str, Enum):
    """User-facing booking status derived on read, never persisted."""

    DELIVERED = "delivered"
    IN_PRODUCTION = "in_production"
    READY_TO_LAUNCH = "ready_to_launch"
    APPROVED = "approved"
    PENDING_REVIEW = "pending_review"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class ProgressMode(str, Enum):
    """How a milestone's percentage is derived from its tasks (per deployment)."""

    COMPLETION_RATIO = "completion_ratio"
    TASK_AVERAGE = "task_average"


class CallerRole(str, Enum):
    """Role of the caller relative to the marketplace."""

    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


class EntityType(str, Enum):
    """Entity kinds carried by change events."""

    TASK = "task"
    MILESTONE = "milestone"
    BOOKING = "booking"

"""
Initializes the models package for SQLAlchemy declarative base.

Importing this package registers every table on ``Base.metadata`` so that
``Base.metadata.create_all()`` sees the full schema.
"""

from booking_progress.db.models.base import Base
from booking_progress.db.models.enums import (
    WorkStatus,
    ReviewAction,
    ReviewOutcome,
    BookingStatus,
    ApprovalStatus,
    InvoiceStatus,
    CanonicalStatus,
    ProgressMode,
    CallerRole,
    EntityType,
)
from booking_progress.db.models.booking import Booking
from booking_progress.db.models.milestone import Milestone
from booking_progress.db.models.task import Task
from booking_progress.db.models.invoice import Invoice
from booking_progress.db.models.milestone_approval import MilestoneApproval

__all__ = [
    "Base",
    "WorkStatus",
    "ReviewAction",
    "ReviewOutcome",
    "BookingStatus",
    "ApprovalStatus",
    "InvoiceStatus",
    "CanonicalStatus",
    "ProgressMode",
    "CallerRole",
    "EntityType",
    "Booking",
    "Milestone",
    "Task",
    "Invoice",
    "MilestoneApproval",
]

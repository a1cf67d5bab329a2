# File: booking_progress/db/models/milestone.py
"""
Milestone model for the booking progress engine.

Milestones are weighted phases of a booking. ``progress_percentage`` is a
cache recomputed from the milestone's tasks and never authoritative on
its own.
"""

from sqlalchemy import Column, String, Integer, Float, ForeignKey, DateTime, Text
from sqlalchemy.orm import relationship, validates

from booking_progress.db.models.base import (
    AbstractBase,
    ModelValidationError,
    ValidationMixin,
    TimestampMixin,
)
from booking_progress.db.models.enums import ReviewOutcome, WorkStatus

WORK_STATUSES = {s.value for s in WorkStatus}
# A rejected review leaves the milestone in the rejected state until it is reworked
MILESTONE_STATUSES = WORK_STATUSES | {ReviewOutcome.REJECTED.value}


class Milestone(AbstractBase, ValidationMixin, TimestampMixin):
    """
    Milestone model.

    Attributes:
        booking_id: ID of the owning booking
        title: Milestone title
        status: Work status (same enum as tasks), or rejected after a review
        weight: Relative contribution to booking progress (> 0)
        progress_percentage: Cached percentage derived from tasks (0-100)
        order_index: Display and dependency ordering
        due_date: Optional deadline
        completed_at: When the milestone was last completed or approved
    """

    __tablename__ = "milestones"

    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default=WorkStatus.PENDING.value)
    weight = Column(Float, nullable=False, default=1.0)
    progress_percentage = Column(Integer, nullable=False, default=0)
    order_index = Column(Integer, nullable=False, default=0)
    due_date = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=True, default=0)

    version = Column(Integer, nullable=False, default=1)

    booking = relationship("Booking", back_populates="milestones")
    tasks = relationship(
        "Task",
        back_populates="milestone",
        cascade="all, delete-orphan",
        order_by="Task.id",
    )
    approvals = relationship(
        "MilestoneApproval",
        back_populates="milestone",
        cascade="all, delete-orphan",
        order_by="MilestoneApproval.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("title")
    def validate_title(self, key: str, title: str) -> str:
        if not title or not title.strip():
            raise ModelValidationError(self, key, "Title cannot be empty")
        return title.strip()

    @validates("status")
    def validate_status(self, key: str, status: str) -> str:
        if status not in MILESTONE_STATUSES:
            raise ModelValidationError(self, key, f"Unknown status '{status}'")
        return status

    @validates("weight")
    def validate_weight(self, key: str, weight: float) -> float:
        if weight is None or weight <= 0:
            raise ModelValidationError(self, key, "Weight must be greater than 0")
        return float(weight)

    @validates("progress_percentage")
    def validate_progress(self, key: str, value: int) -> int:
        return self.check_percentage(key, value)

    @validates("estimated_hours", "actual_hours")
    def validate_hours(self, key: str, value):
        return self.check_non_negative(key, value)

    def __repr__(self) -> str:
        return (
            f"<Milestone(id={self.id}, booking_id={self.booking_id}, title='{self.title}', "
            f"weight={self.weight}, progress={self.progress_percentage})>"
        )

# File: booking_progress/db/models/task.py
"""
Task model for the booking progress engine.

This module defines the Task model, the smallest trackable unit of work,
owned by exactly one milestone.
"""

from sqlalchemy import Column, String, Integer, Float, ForeignKey, DateTime, Boolean, Text
from sqlalchemy.orm import relationship, validates

from booking_progress.db.models.base import (
    AbstractBase,
    ModelValidationError,
    ValidationMixin,
    TimestampMixin,
)
from booking_progress.db.models.milestone import WORK_STATUSES
from booking_progress.db.models.enums import WorkStatus


class Task(AbstractBase, ValidationMixin, TimestampMixin):
    """
    Task model.

    Attributes:
        milestone_id: ID of the owning milestone
        title: Task title
        status: Work status
        due_date: Optional deadline
        progress_percentage: 0-100; always 100 when completed
        estimated_hours: Planned effort
        actual_hours: Logged effort
        editable: Whether fields other than status may be edited
        completed_at: When the task was last completed
    """

    __tablename__ = "tasks"

    milestone_id = Column(Integer, ForeignKey("milestones.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default=WorkStatus.PENDING.value)
    due_date = Column(DateTime(timezone=True), nullable=True)
    progress_percentage = Column(Integer, nullable=False, default=0)

    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=True, default=0)
    editable = Column(Boolean, nullable=False, default=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    milestone = relationship("Milestone", back_populates="tasks")

    __mapper_args__ = {"version_id_col": version}

    @validates("title")
    def validate_title(self, key: str, title: str) -> str:
        if not title or not title.strip():
            raise ModelValidationError(self, key, "Title cannot be empty")
        return title.strip()

    @validates("status")
    def validate_status(self, key: str, status: str) -> str:
        if status not in WORK_STATUSES:
            raise ModelValidationError(self, key, f"Unknown status '{status}'")
        return status

    @validates("progress_percentage")
    def validate_progress(self, key: str, value: int) -> int:
        return self.check_percentage(key, value)

    @validates("estimated_hours", "actual_hours")
    def validate_hours(self, key: str, value):
        return self.check_non_negative(key, value)

    def __repr__(self) -> str:
        return (
            f"<Task(id={self.id}, milestone_id={self.milestone_id}, title='{self.title}', "
            f"status='{self.status}')>"
        )

# File: booking_progress/db/models/milestone_approval.py
"""
Review records for milestones.

Every approve or reject is kept, including repeated approvals of an
already completed milestone.
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship, validates

from booking_progress.db.models.base import AbstractBase, ModelValidationError, TimestampMixin
from booking_progress.db.models.enums import ReviewOutcome

REVIEW_OUTCOMES = {o.value for o in ReviewOutcome}


class MilestoneApproval(AbstractBase, TimestampMixin):
    """
    One review of a milestone by a booking party.

    Attributes:
        milestone_id: Reviewed milestone
        user_id: Reviewer
        status: approved or rejected
        comment: Optional feedback
    """

    __tablename__ = "milestone_approvals"

    milestone_id = Column(Integer, ForeignKey("milestones.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False)
    status = Column(String(50), nullable=False)
    comment = Column(Text, nullable=True)

    milestone = relationship("Milestone", back_populates="approvals")

    @validates("status")
    def validate_status(self, key: str, status: str) -> str:
        if status not in REVIEW_OUTCOMES:
            raise ModelValidationError(self, key, f"Unknown review outcome '{status}'")
        return status

    def __repr__(self) -> str:
        return f"<MilestoneApproval(id={self.id}, milestone_id={self.milestone_id}, status='{self.status}')>"

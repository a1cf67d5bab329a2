# File: booking_progress/db/models/booking.py
"""
Booking model for the booking progress engine.

A booking is the top-level unit of work between a client and a provider.
Its ``project_progress`` column is a materialized aggregate of its
milestones and is only written by the recalculation service.
"""

from sqlalchemy import Column, String, Integer, Float, Text
from sqlalchemy.orm import relationship, validates

from booking_progress.db.models.base import AbstractBase, ValidationMixin, TimestampMixin
from booking_progress.db.models.enums import BookingStatus, ApprovalStatus


class Booking(AbstractBase, ValidationMixin, TimestampMixin):
    """
    Booking model.

    Attributes:
        client_id: ID of the client user
        provider_id: ID of the provider user
        status: Raw workflow status (pending, approved, in_progress, ...)
        approval_status: Separate approval workflow status
        project_progress: Cached weighted aggregate of milestone progress (0-100)
        version: Optimistic concurrency counter
    """

    __tablename__ = "bookings"

    client_id = Column(String(64), nullable=False, index=True)
    provider_id = Column(String(64), nullable=False, index=True)

    title = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(50), nullable=False, default=BookingStatus.PENDING.value)
    approval_status = Column(String(50), nullable=True, default=ApprovalStatus.PENDING.value)

    project_progress = Column(Integer, nullable=False, default=0)

    # Carried for the invoicing collaborator, unused by the engine
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    milestones = relationship(
        "Milestone",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="Milestone.order_index",
    )
    invoices = relationship(
        "Invoice", back_populates="booking", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    @validates("project_progress")
    def validate_project_progress(self, key: str, value: int) -> int:
        return self.check_percentage(key, value)

    def involves(self, user_id) -> bool:
        """True if the user is this booking's client or provider."""
        return str(user_id) in (str(self.client_id), str(self.provider_id))

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status='{self.status}', project_progress={self.project_progress})>"

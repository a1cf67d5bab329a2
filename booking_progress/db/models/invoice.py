# File: booking_progress/db/models/invoice.py
"""
Invoice model.

Only the fields status inference needs are modelled; invoice generation
belongs to the invoicing collaborator.
"""

from sqlalchemy import Column, String, Integer, Float, ForeignKey
from sqlalchemy.orm import relationship

from booking_progress.db.models.base import AbstractBase, TimestampMixin
from booking_progress.db.models.enums import InvoiceStatus


class Invoice(AbstractBase, TimestampMixin):
    """Invoice issued for a booking."""

    __tablename__ = "invoices"

    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False, default=InvoiceStatus.DRAFT.value)
    amount = Column(Float, nullable=True)
    currency = Column(String(3), nullable=True)

    booking = relationship("Booking", back_populates="invoices")

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, booking_id={self.booking_id}, status='{self.status}')>"

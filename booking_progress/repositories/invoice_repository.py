# File: booking_progress/repositories/invoice_repository.py

from typing import Dict, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_progress.db.models.invoice import Invoice
from booking_progress.repositories.base_repository import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    """
    Repository for Invoice lookups used by status inference.
    """

    model = Invoice

    def __init__(self, session: Session):
        super().__init__(session)

    def get_latest_for_booking(self, booking_id: int) -> Optional[Invoice]:
        """
        Get the most recent invoice of a booking.

        Returns:
            The invoice with the latest created_at (then highest id), or None
        """
        stmt = (
            select(Invoice)
            .where(Invoice.booking_id == booking_id)
            .order_by(Invoice.created_at.desc(), Invoice.id.desc())
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def latest_by_booking(self, booking_ids: Sequence[int]) -> Dict[int, Invoice]:
        latest: Dict[int, Invoice] = {}
        if not booking_ids:
            return latest
        stmt = (
            select(Invoice)
            .where(Invoice.booking_id.in_(list(booking_ids)))
            .order_by(Invoice.created_at, Invoice.id)
        )
        for invoice in self.session.execute(stmt).scalars():
            latest[invoice.booking_id] = invoice
        return latest

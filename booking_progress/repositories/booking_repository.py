# File: booking_progress/repositories/booking_repository.py

from typing import Any, List

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from booking_progress.db.models.booking import Booking
from booking_progress.repositories.base_repository import BaseRepository


class BookingRepository(BaseRepository[Booking]):
    """
    Repository for Booking entity operations.
    """

    model = Booking

    def __init__(self, session: Session):
        super().__init__(session)

    def list_for_user(self, user_id: Any) -> List[Booking]:
        """Bookings where the user is the client or the provider, ordered by id."""
        stmt = (
            select(Booking)
            .where(or_(Booking.client_id == str(user_id), Booking.provider_id == str(user_id)))
            .order_by(Booking.id)
        )
        return list(self.session.execute(stmt).scalars().all())

# File: booking_progress/repositories/milestone_repository.py

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_progress.db.models.milestone import Milestone
from booking_progress.repositories.base_repository import BaseRepository


class MilestoneRepository(BaseRepository[Milestone]):
    """
    Repository for Milestone entity operations.
    """

    model = Milestone

    def __init__(self, session: Session):
        super().__init__(session)

    def list_by_booking(self, booking_id: int, fresh: bool = False, for_update: bool = False) -> List[Milestone]:
        """
        Get the milestones of a booking in display order.

        Args:
            booking_id: ID of the booking
            fresh: Re-read every row from the database instead of trusting
                   copies already in the session
            for_update: Lock the rows where the dialect supports it

        Returns:
            Milestones ordered by order_index, then id
        """
        stmt = (
            select(Milestone)
            .where(Milestone.booking_id == booking_id)
            .order_by(Milestone.order_index, Milestone.id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    def next_order_index(self, booking_id: int) -> int:
        milestones = self.list_by_booking(booking_id)
        return max((m.order_index for m in milestones), default=-1) + 1

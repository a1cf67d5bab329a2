# File: booking_progress/repositories/milestone_approval_repository.py

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_progress.db.models.milestone_approval import MilestoneApproval
from booking_progress.repositories.base_repository import BaseRepository


class MilestoneApprovalRepository(BaseRepository[MilestoneApproval]):
    """
    Repository for milestone review records.
    """

    model = MilestoneApproval

    def __init__(self, session: Session):
        super().__init__(session)

    def list_by_milestone(self, milestone_id: int) -> List[MilestoneApproval]:
        """Reviews of a milestone, oldest first."""
        stmt = (
            select(MilestoneApproval)
            .where(MilestoneApproval.milestone_id == milestone_id)
            .order_by(MilestoneApproval.id)
        )
        return list(self.session.execute(stmt).scalars().all())

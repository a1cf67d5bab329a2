# File: booking_progress/repositories/task_repository.py

from typing import List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from booking_progress.db.models.task import Task
from booking_progress.repositories.base_repository import BaseRepository


class TaskRepository(BaseRepository[Task]):
    """
    Repository for Task entity operations.
    """

    model = Task

    def __init__(self, session: Session):
        super().__init__(session)

    def list_by_milestone(self, milestone_id: int, fresh: bool = False) -> List[Task]:
        """
        Get the tasks of a milestone.

        Args:
            milestone_id: ID of the milestone
            fresh: Re-read every row from the database instead of trusting
                   copies already in the session

        Returns:
            Tasks ordered by id
        """
        stmt = select(Task).where(Task.milestone_id == milestone_id).order_by(Task.id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars().all())

    def list_by_milestones(self, milestone_ids: Sequence[int]) -> List[Task]:
        if not milestone_ids:
            return []
        stmt = (
            select(Task)
            .where(Task.milestone_id.in_(list(milestone_ids)))
            .order_by(Task.milestone_id, Task.id)
        )
        return list(self.session.execute(stmt).scalars().all())

# File: booking_progress/api/endpoints/tasks.py
"""
Task API endpoints.

Every write recomputes the task's milestone and booking in the same commit.
Domain errors are rendered by the application's exception handler.
"""

import logging

from fastapi import APIRouter, Depends, Path, Response

from booking_progress.api.deps import get_current_caller, get_progress_service
from booking_progress.schemas.progress import TaskResponse, TaskUpdate
from booking_progress.services.progress_service import Caller, ProgressService, serialize_task

router = APIRouter()
logger = logging.getLogger(__name__)

HTTP_204_NO_CONTENT = 204


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    *,
    task_id: int = Path(..., ge=1, description="Task ID"),
    task_in: TaskUpdate,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> TaskResponse:
    """Update a task's status or fields."""
    logger.info(f"Caller {caller.id} updating task {task_id}: {sorted(task_in.model_fields_set)}")
    task = progress_service.mutate_task(task_id, task_in.model_dump(exclude_unset=True), caller)
    return TaskResponse.model_validate(serialize_task(task, progress_service.clock()))


@router.delete("/{task_id}", status_code=HTTP_204_NO_CONTENT)
def delete_task(
    *,
    task_id: int = Path(..., ge=1, description="Task ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> Response:
    """Delete a task."""
    logger.info(f"Caller {caller.id} deleting task {task_id}")
    progress_service.delete_task(task_id, caller)
    return Response(status_code=HTTP_204_NO_CONTENT)

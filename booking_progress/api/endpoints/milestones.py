# File: booking_progress/api/endpoints/milestones.py
"""
Milestone API endpoints.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Path, Response

from booking_progress.api.deps import get_current_caller, get_progress_service
from booking_progress.schemas.progress import (
    MilestoneApprovalRequest,
    MilestoneApprovalResponse,
    MilestoneResponse,
    MilestoneReviewResponse,
    MilestoneUpdate,
    TaskCreate,
    TaskResponse,
)
from booking_progress.services.progress_service import (
    Caller,
    ProgressService,
    serialize_milestone,
    serialize_task,
)

router = APIRouter()
logger = logging.getLogger(__name__)

HTTP_201_CREATED = 201
HTTP_204_NO_CONTENT = 204


@router.post("/{milestone_id}/tasks", response_model=TaskResponse, status_code=HTTP_201_CREATED)
def create_task(
    *,
    milestone_id: int = Path(..., ge=1, description="Milestone ID"),
    task_in: TaskCreate,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> TaskResponse:
    """Create a task under a milestone."""
    logger.info(f"Caller {caller.id} creating task '{task_in.title}' under milestone {milestone_id}")
    task = progress_service.create_task(milestone_id, task_in.model_dump(exclude_unset=True), caller)
    logger.info(f"Task {task.id} created under milestone {milestone_id}")
    return TaskResponse.model_validate(serialize_task(task, progress_service.clock()))


@router.patch("/{milestone_id}", response_model=MilestoneResponse)
def update_milestone(
    *,
    milestone_id: int = Path(..., ge=1, description="Milestone ID"),
    milestone_in: MilestoneUpdate,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> MilestoneResponse:
    """
    Update a milestone's fields.

    ``progress_percentage`` is derived from tasks and rejected here.
    """
    logger.info(f"Caller {caller.id} updating milestone {milestone_id}: {sorted(milestone_in.model_fields_set)}")
    milestone = progress_service.mutate_milestone(
        milestone_id, milestone_in.model_dump(exclude_unset=True), caller
    )
    return MilestoneResponse.model_validate(serialize_milestone(milestone, progress_service.clock()))


@router.delete("/{milestone_id}", status_code=HTTP_204_NO_CONTENT)
def delete_milestone(
    *,
    milestone_id: int = Path(..., ge=1, description="Milestone ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> Response:
    """Delete a milestone and all of its tasks."""
    logger.info(f"Caller {caller.id} deleting milestone {milestone_id}")
    progress_service.delete_milestone(milestone_id, caller)
    return Response(status_code=HTTP_204_NO_CONTENT)


@router.post("/{milestone_id}/approval", response_model=MilestoneReviewResponse)
def review_milestone(
    *,
    milestone_id: int = Path(..., ge=1, description="Milestone ID"),
    review_in: MilestoneApprovalRequest,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> MilestoneReviewResponse:
    """
    Approve or reject a milestone.

    Open to the booking's client, its provider and admins. Approving an
    already completed milestone only records the review.
    """
    logger.info(f"Caller {caller.id} reviewing milestone {milestone_id}: {review_in.action.value}")
    milestone, approval = progress_service.approve_milestone(
        milestone_id, review_in.action, review_in.feedback, caller
    )
    return MilestoneReviewResponse(
        milestone=MilestoneResponse.model_validate(serialize_milestone(milestone, progress_service.clock())),
        approval=MilestoneApprovalResponse.model_validate(approval),
        message=f"Milestone {approval.status} successfully",
    )


@router.get("/{milestone_id}/approvals", response_model=List[MilestoneApprovalResponse])
def list_milestone_approvals(
    *,
    milestone_id: int = Path(..., ge=1, description="Milestone ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> List[MilestoneApprovalResponse]:
    """Reviews of a milestone, oldest first."""
    approvals = progress_service.list_milestone_approvals(milestone_id, caller)
    return [MilestoneApprovalResponse.model_validate(approval) for approval in approvals]

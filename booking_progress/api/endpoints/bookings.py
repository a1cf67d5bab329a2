# File: booking_progress/api/endpoints/bookings.py
"""
Booking-scoped API endpoints: milestone creation, default plan seeding, the
derived display status and a per-status summary of the caller's bookings.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Path

from booking_progress.api.deps import get_current_caller, get_progress_service
from booking_progress.schemas.progress import (
    DisplayStatusResponse,
    MilestoneCreate,
    MilestoneResponse,
    StatusSummaryResponse,
)
from booking_progress.services.progress_service import Caller, ProgressService, serialize_milestone

router = APIRouter()
logger = logging.getLogger(__name__)

HTTP_201_CREATED = 201


@router.get("/summary", response_model=StatusSummaryResponse)
def get_status_summary(
    *,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> StatusSummaryResponse:
    """Count the caller's bookings per display status."""
    counts = progress_service.summarize_statuses(caller)
    total = counts.pop("total")
    other = counts.pop("other")
    return StatusSummaryResponse(total=total, counts=counts, other=other)


@router.post("/{booking_id}/milestones", response_model=MilestoneResponse, status_code=HTTP_201_CREATED)
def create_milestone(
    *,
    booking_id: int = Path(..., ge=1, description="Booking ID"),
    milestone_in: MilestoneCreate,
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> MilestoneResponse:
    """Create a milestone under a booking."""
    logger.info(f"Caller {caller.id} creating milestone '{milestone_in.title}' on booking {booking_id}")
    milestone = progress_service.create_milestone(
        booking_id, milestone_in.model_dump(exclude_unset=True), caller
    )
    return MilestoneResponse.model_validate(serialize_milestone(milestone, progress_service.clock()))


@router.post(
    "/{booking_id}/milestones/seed",
    response_model=List[MilestoneResponse],
    status_code=HTTP_201_CREATED,
)
def seed_milestones(
    *,
    booking_id: int = Path(..., ge=1, description="Booking ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> List[MilestoneResponse]:
    """Create the default milestone plan on a booking that has none."""
    logger.info(f"Caller {caller.id} seeding default milestones on booking {booking_id}")
    milestones = progress_service.seed_default_milestones(booking_id, caller)
    now = progress_service.clock()
    return [MilestoneResponse.model_validate(serialize_milestone(m, now)) for m in milestones]


@router.get("/{booking_id}/status", response_model=DisplayStatusResponse)
def get_booking_status(
    *,
    booking_id: int = Path(..., ge=1, description="Booking ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> DisplayStatusResponse:
    """Get the canonical display status of a booking."""
    return DisplayStatusResponse.model_validate(progress_service.get_display_status(booking_id, caller))

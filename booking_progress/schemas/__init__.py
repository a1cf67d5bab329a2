# File: booking_progress/schemas/__init__.py
"""
Schemas package for the booking progress API.

Pydantic models used for request validation and response serialization.
"""

from .progress import (
    TaskCreate,
    TaskUpdate,
    TaskResponse,
    MilestoneCreate,
    MilestoneUpdate,
    MilestoneResponse,
    MilestoneProgress,
    MilestoneApprovalRequest,
    MilestoneApprovalResponse,
    MilestoneReviewResponse,
    RiskResponse,
    ProgressResponse,
    DisplayStatusResponse,
    RecomputeResponse,
    StatusSummaryResponse,
)

__all__ = [
    # Tasks
    'TaskCreate', 'TaskUpdate', 'TaskResponse',

    # Milestones
    'MilestoneCreate', 'MilestoneUpdate', 'MilestoneResponse', 'MilestoneProgress',

    # Milestone reviews
    'MilestoneApprovalRequest', 'MilestoneApprovalResponse', 'MilestoneReviewResponse',

    # Read models
    'RiskResponse', 'ProgressResponse', 'DisplayStatusResponse', 'RecomputeResponse', 'StatusSummaryResponse',
]

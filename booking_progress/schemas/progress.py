# File: booking_progress/schemas/progress.py
"""
Progress schemas for the booking progress API.

Request models for task and milestone edits and response models for the
progress read model. Cached aggregates (``Milestone.progress_percentage``,
``Booking.project_progress``) are never accepted as input: the update
models forbid unknown fields, so sending one is a validation error.
"""

from datetime import datetime, date, timezone
from typing import Any, Dict, List, Optional
import logging

from pydantic import BaseModel, Field, field_validator, ConfigDict

from booking_progress.db.models.enums import ReviewAction, WorkStatus

logger = logging.getLogger(__name__)


def parse_due_date(value: Any, field_name: str) -> Optional[datetime]:
    """Accept datetimes, dates and ISO strings; date-only values mean midnight UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time(), tzinfo=timezone.utc)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Pydantic validator failed datetime parse: '{value}' for '{field_name}'.")
            raise ValueError(f"Invalid datetime format for {field_name}. Expected ISO 8601 format.")
    raise ValueError(f"Invalid type for {field_name}: {type(value)}. Expected datetime string or object.")


# --- Request schemas ---

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    status: WorkStatus = Field(WorkStatus.PENDING, description="Initial task status")
    due_date: Optional[Any] = Field(None, description="Deadline (ISO 8601)")
    progress_percentage: Optional[int] = Field(None, ge=0, le=100, description="Manual progress (task_average mode)")
    estimated_hours: Optional[float] = Field(None, ge=0, description="Planned effort in hours")
    actual_hours: Optional[float] = Field(None, ge=0, description="Logged effort in hours")
    editable: bool = Field(True, description="Whether fields other than status may be edited later")

    model_config = ConfigDict(extra="forbid")

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: Any, info):
        return parse_due_date(v, info.field_name)


class TaskUpdate(BaseModel):
    """Partial task edit; only fields present in the request are applied."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    status: Optional[WorkStatus] = Field(None)
    due_date: Optional[Any] = Field(None)
    progress_percentage: Optional[int] = Field(None, ge=0, le=100)
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: Any, info):
        return parse_due_date(v, info.field_name)


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, description="Milestone title")
    description: Optional[str] = Field(None, description="Milestone description")
    status: WorkStatus = Field(WorkStatus.PENDING, description="Initial milestone status")
    weight: float = Field(1.0, gt=0, description="Relative contribution to booking progress")
    order_index: Optional[int] = Field(None, ge=0, description="Position; appended last when omitted")
    due_date: Optional[Any] = Field(None, description="Deadline (ISO 8601)")
    estimated_hours: Optional[float] = Field(None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: Any, info):
        return parse_due_date(v, info.field_name)


class MilestoneUpdate(BaseModel):
    """Partial milestone edit. ``progress_percentage`` is derived and not accepted."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None)
    status: Optional[WorkStatus] = Field(None)
    weight: Optional[float] = Field(None, gt=0)
    order_index: Optional[int] = Field(None, ge=0)
    due_date: Optional[Any] = Field(None)
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)

    model_config = ConfigDict(extra="forbid")

    @field_validator("due_date", mode="before")
    @classmethod
    def validate_due_date(cls, v: Any, info):
        return parse_due_date(v, info.field_name)


class MilestoneApprovalRequest(BaseModel):
    """Approve or reject a milestone, with optional feedback for the provider."""

    action: ReviewAction = Field(..., description="approve or reject")
    feedback: Optional[str] = Field(None, max_length=2000, description="Reviewer comment")

    model_config = ConfigDict(extra="forbid")


# --- Response schemas ---

class TaskResponse(BaseModel):
    id: int
    milestone_id: int
    title: str
    description: Optional[str] = None
    status: str
    due_date: Optional[datetime] = None
    progress_percentage: int = 0
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    editable: bool = True
    completed_at: Optional[datetime] = None
    is_overdue: bool = False
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneResponse(BaseModel):
    id: int
    booking_id: int
    title: str
    description: Optional[str] = None
    status: str
    weight: float
    progress_percentage: int = 0
    order_index: int = 0
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    is_overdue: bool = False
    version: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneApprovalResponse(BaseModel):
    id: int
    milestone_id: int
    user_id: str
    status: str
    comment: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MilestoneReviewResponse(BaseModel):
    milestone: MilestoneResponse
    approval: MilestoneApprovalResponse
    message: str


class MilestoneProgress(MilestoneResponse):
    total_tasks: int = 0
    completed_tasks: int = 0
    tasks: List[TaskResponse] = Field(default_factory=list)


class RiskResponse(BaseModel):
    id: str
    type: str
    severity: str
    description: str
    impact: str
    mitigation: str
    milestone_ids: List[int] = Field(default_factory=list)


class ProgressResponse(BaseModel):
    booking_id: int
    milestones: List[MilestoneProgress] = Field(default_factory=list)
    overall_progress: int = Field(0, ge=0, le=100)
    total_tasks: int = 0
    completed_tasks: int = 0
    total_milestones: int = 0
    completed_milestones: int = 0
    overdue_tasks: int = 0
    display_status: str
    status_subtitle: str
    total_estimated_hours: float = 0.0
    total_actual_hours: float = 0.0
    risks: List[RiskResponse] = Field(default_factory=list)


class DisplayStatusResponse(BaseModel):
    booking_id: int
    display_status: str
    status_subtitle: str
    canonical: bool = Field(..., description="False when the raw status was passed through unrecognized")
    raw_status: Optional[str] = None
    approval_status: Optional[str] = None
    invoice_status: Optional[str] = None


class RecomputeResponse(BaseModel):
    booking_id: int
    project_progress: int
    milestone_progress: Dict[int, int] = Field(default_factory=dict)
    attempts: int = 1


class StatusSummaryResponse(BaseModel):
    """Booking counts per canonical status; ``other`` counts pass-through statuses."""

    total: int = 0
    counts: Dict[str, int] = Field(default_factory=dict)
    other: int = 0

# File: booking_progress/services/milestone_templates.py
"""
Default milestone plan seeded onto a booking that has none.

The plan spans four weeks; due dates are offsets from the seeding time.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Tuple

from booking_progress.db.models.enums import WorkStatus


@dataclass(frozen=True)
class MilestoneTemplate:
    title: str
    description: str
    weight: float
    due_in_days: int
    estimated_hours: float
    tasks: Tuple[str, ...]


DEFAULT_MILESTONES: Tuple[MilestoneTemplate, ...] = (
    MilestoneTemplate(
        title="Planning",
        description="Agree on goals, audience and a content calendar",
        weight=1.0,
        due_in_days=7,
        estimated_hours=8,
        tasks=("Collect client requirements", "Research audience and competitors", "Draft content calendar"),
    ),
    MilestoneTemplate(
        title="Content Creation",
        description="Produce the content agreed in the plan",
        weight=2.0,
        due_in_days=14,
        estimated_hours=16,
        tasks=("Write copy", "Design visual assets", "Submit drafts for client review"),
    ),
    MilestoneTemplate(
        title="Posting",
        description="Publish approved content on the agreed channels",
        weight=1.0,
        due_in_days=21,
        estimated_hours=6,
        tasks=("Schedule posts", "Publish content", "Monitor engagement"),
    ),
    MilestoneTemplate(
        title="Reporting",
        description="Report results back to the client",
        weight=1.0,
        due_in_days=28,
        estimated_hours=4,
        tasks=("Collect performance data", "Prepare results report", "Review report with client"),
    ),
)


def build_default_plan(booking_id: Any, start: datetime) -> List[Dict[str, Any]]:
    """
    Expand the default template into milestone rows, each with a ``tasks``
    list of task rows.

    Args:
        booking_id: Booking the plan is created for
        start: Reference time due dates are offset from
    """
    plan = []
    for order_index, template in enumerate(DEFAULT_MILESTONES):
        due_date = start + timedelta(days=template.due_in_days)
        plan.append(
            {
                "booking_id": booking_id,
                "title": template.title,
                "description": template.description,
                "status": WorkStatus.PENDING.value,
                "weight": template.weight,
                "order_index": order_index,
                "due_date": due_date,
                "estimated_hours": template.estimated_hours,
                "actual_hours": 0,
                "progress_percentage": 0,
                "tasks": [
                    {"title": title, "status": WorkStatus.PENDING.value, "due_date": due_date}
                    for title in template.tasks
                ],
            }
        )
    return plan

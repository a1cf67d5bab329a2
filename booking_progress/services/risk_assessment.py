# File: booking_progress/services/risk_assessment.py
"""
Read-time delivery risks for a booking's milestones.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from booking_progress.db.models.enums import WorkStatus
from booking_progress.services.overdue import is_overdue


@dataclass(frozen=True)
class Risk:
    id: str
    type: str
    severity: str
    description: str
    impact: str
    mitigation: str
    milestone_ids: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def find_blocked_milestones(milestones: Sequence[Any]) -> List[Any]:
    """
    Pending milestones with an earlier (lower ``order_index``) sibling that
    is not completed yet.
    """
    blocked = []
    for milestone in milestones:
        if milestone.status != WorkStatus.PENDING.value:
            continue
        if any(
            other.order_index < milestone.order_index
            and other.status != WorkStatus.COMPLETED.value
            for other in milestones
        ):
            blocked.append(milestone)
    return blocked


def assess_risks(milestones: Sequence[Any], now: Optional[datetime] = None) -> List[Risk]:
    risks: List[Risk] = []

    overdue = [m for m in milestones if is_overdue(m, now)]
    if overdue:
        risks.append(
            Risk(
                id="overdue_milestones",
                type="deadline",
                severity="high",
                description=f"{len(overdue)} milestone(s) overdue",
                impact="Project timeline at risk",
                mitigation="Review and adjust milestone deadlines",
                milestone_ids=[m.id for m in overdue],
            )
        )

    blocked = find_blocked_milestones(milestones)
    if blocked:
        risks.append(
            Risk(
                id="blocked_dependencies",
                type="dependency",
                severity="medium",
                description=f"{len(blocked)} milestone(s) waiting on dependencies",
                impact="Progress may be delayed",
                mitigation="Complete prerequisite milestones first",
                milestone_ids=[m.id for m in blocked],
            )
        )

    return risks

# File: booking_progress/services/progress_calculator.py

"""
Progress aggregation for the Booking -> Milestone -> Task hierarchy.

Everything in this module is a pure function of its arguments: no I/O, no
hidden state, no clock unless one is passed in. Results are integer
percentages clamped to [0, 100] and rounded half-up.

Two task-to-milestone models exist and one of them is chosen per
deployment (``PROGRESS_MODE``):

- ``completion_ratio``: a task counts as 100 when completed, 0 otherwise,
  and a milestone is ``completed / total``.
- ``task_average``: a task carries its own ``progress_percentage`` (forced to
  100 when completed) and a milestone is the mean of its tasks.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping, Optional, Sequence

from booking_progress.db.models.enums import ProgressMode, WorkStatus
from booking_progress.services.overdue import is_overdue

COMPLETED = WorkStatus.COMPLETED.value


def _field(item: Any, *names: str, default: Any = None) -> Any:
    """Read the first present attribute/key from a model, mapping or dataclass."""
    for name in names:
        if isinstance(item, Mapping):
            if name in item and item[name] is not None:
                return item[name]
        else:
            value = getattr(item, name, None)
            if value is not None:
                return value
    return default


def clamp_percentage(value: Any) -> int:
    """Round half-up and clamp into [0, 100]; anything non-numeric is 0."""
    try:
        number = Decimal(str(value))
    except (ArithmeticError, ValueError, TypeError):
        return 0
    if not number.is_finite():
        return 0
    rounded = int(number.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return max(0, min(100, rounded))


def _ratio(numerator: float, denominator: float) -> int:
    if denominator <= 0:
        return 0
    return clamp_percentage(Decimal(str(numerator)) / Decimal(str(denominator)))


def compute_task_progress(task: Any, mode: ProgressMode = ProgressMode.COMPLETION_RATIO) -> int:
    """
    Percentage a single task contributes to its milestone.

    Completed tasks are always 100, whatever their stored percentage says.
    """
    if _field(task, "status") == COMPLETED:
        return 100
    if ProgressMode(mode) is ProgressMode.TASK_AVERAGE:
        return clamp_percentage(_field(task, "progress_percentage", default=0))
    return 0


def compute_milestone_progress(
    tasks: Iterable[Any], mode: ProgressMode = ProgressMode.COMPLETION_RATIO
) -> int:
    """
    Derive a milestone's percentage from its tasks.

    Args:
        tasks: The milestone's tasks, freshly read
        mode: Deployment progress model

    Returns:
        0 for no tasks, otherwise the completion ratio or task mean
    """
    task_list = list(tasks)
    if not task_list:
        return 0

    if ProgressMode(mode) is ProgressMode.TASK_AVERAGE:
        total = sum(compute_task_progress(t, mode) for t in task_list)
        return _ratio(total, len(task_list))

    completed = sum(1 for t in task_list if _field(t, "status") == COMPLETED)
    # min() guards against a caller-supplied list that double counts completions
    return _ratio(100 * min(completed, len(task_list)), len(task_list))


def compute_booking_progress(milestones: Iterable[Any]) -> int:
    """
    Weighted mean of milestone percentages.

    Each entry may be a Milestone or a mapping with ``progress_percentage``
    (or ``percent``) and ``weight``. Entries whose weight is not positive
    contribute nothing; a zero total weight yields 0.
    """
    weighted_sum = Decimal(0)
    total_weight = Decimal(0)
    for milestone in milestones:
        try:
            weight = Decimal(str(_field(milestone, "weight", default=0)))
        except (ArithmeticError, ValueError, TypeError):
            continue
        if not weight.is_finite() or weight <= 0:
            continue
        percent = clamp_percentage(_field(milestone, "progress_percentage", "percent", default=0))
        weighted_sum += Decimal(percent) * weight
        total_weight += weight

    if total_weight == 0:
        return 0
    return clamp_percentage(weighted_sum / total_weight)


@dataclass(frozen=True)
class TaskSummary:
    """Counts over a booking's tasks used by the progress read model."""

    total_tasks: int = 0
    completed_tasks: int = 0
    overdue_tasks: int = 0
    total_estimated_hours: float = 0.0
    total_actual_hours: float = 0.0


def summarize_tasks(tasks: Sequence[Any], now: Optional[datetime] = None) -> TaskSummary:
    """Count total, completed and overdue tasks and sum their hours."""
    return TaskSummary(
        total_tasks=len(tasks),
        completed_tasks=sum(1 for t in tasks if _field(t, "status") == COMPLETED),
        overdue_tasks=sum(1 for t in tasks if is_overdue(t, now)),
        total_estimated_hours=float(sum(_field(t, "estimated_hours", default=0) for t in tasks)),
        total_actual_hours=float(sum(_field(t, "actual_hours", default=0) for t in tasks)),
    )


def count_completed_milestones(milestones: Iterable[Any]) -> int:
    """A milestone counts as completed by status or by reaching 100%."""
    return sum(
        1
        for m in milestones
        if _field(m, "status") == COMPLETED or clamp_percentage(_field(m, "progress_percentage", default=0)) == 100
    )

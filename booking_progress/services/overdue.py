# File: booking_progress/services/overdue.py
"""
Overdue detection for tasks and milestones.

Overdue-ness is derived at read time and never stored: it changes with the
wall clock alone, without any write.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from booking_progress.db.models.enums import WorkStatus


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as SQLite returns them) as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get(entity: Any, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def is_overdue(entity: Any, now: Optional[datetime] = None) -> bool:
    """
    True iff the entity has a due date in the past and is not completed.

    Args:
        entity: Task or Milestone (or a mapping with due_date/status)
        now: Reference time, defaults to the current UTC time
    """
    due_date = as_utc(_get(entity, "due_date"))
    if due_date is None:
        return False
    if _get(entity, "status") == WorkStatus.COMPLETED.value:
        return False
    reference = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return due_date < reference

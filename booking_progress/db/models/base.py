# File: booking_progress/db/models/base.py
"""
Base models and mixins for the booking progress engine.

This module provides the foundation for all database models, including:
- Base SQLAlchemy model class
- Common mixins for shared functionality (timestamps, validation)
- Percentage and weight validation shared by tasks and milestones
"""

from datetime import datetime, timezone, date
from typing import Any, Dict

from sqlalchemy import Column, Integer, DateTime, MetaData, inspect
from sqlalchemy.orm import declarative_base

Base = declarative_base(metadata=MetaData())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ModelValidationError(ValueError):
    """A column value rejected by a model-level check (`@validates`)."""

    def __init__(self, entity: Any, field: str, message: str):
        self.entity = entity
        self.field = field
        self.message = message
        super().__init__(f"{type(entity).__name__}.{field}: {message}")


class ValidationMixin:
    """
    Mixin providing the value checks shared by tasks and milestones.
    """

    def check_percentage(self, key: str, value: Any) -> int:
        """
        Validate a 0-100 percentage.

        Raises:
            ModelValidationError: If the value is outside [0, 100]
        """
        if value is None:
            return 0
        if value < 0 or value > 100:
            raise ModelValidationError(self, key, "Percentage must be between 0 and 100")
        return int(value)

    def check_non_negative(self, key: str, value: Any) -> Any:
        if value is not None and value < 0:
            raise ModelValidationError(self, key, "Value cannot be negative")
        return value


class TimestampMixin:
    """
    created_at / updated_at columns, set by SQLAlchemy on insert and update.
    """

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
    )


class AbstractBase(Base):
    """Integer primary key plus a column-level serializer."""

    __abstract__ = True

    id = Column(Integer, primary_key=True, autoincrement=True)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize mapped columns; dates become ISO 8601 strings.

        This is the payload change events carry as ``new_value``.
        """
        data: Dict[str, Any] = {}
        for attr in inspect(type(self)).column_attrs:
            value = getattr(self, attr.key)
            data[attr.key] = value.isoformat() if isinstance(value, (datetime, date)) else value
        return data

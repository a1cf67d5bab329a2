# File: booking_progress/core/exceptions.py

from typing import Dict, Any, List, Optional
from datetime import datetime


class BookingProgressException(Exception):
    """Base exception for all booking progress errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize a booking progress exception.

        Args:
            message: Human-readable error message
            code: Optional machine-processable error code
            details: Additional error details (entity ids, operation)
        """
        self.message = message
        self.code = code or "GENERIC_ERROR"
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": datetime.now().isoformat(),
        }


# Domain-specific exceptions
class DomainException(BookingProgressException):
    """Base exception for domain-related errors."""

    CODE_PREFIX = "DOMAIN_"


class EntityNotFoundException(DomainException):
    """Raised when a requested task, milestone or booking does not exist."""

    def __init__(self, entity_type: str, entity_id: Any, operation: Optional[str] = None):
        details = {"entity_type": entity_type, "entity_id": entity_id}
        if operation:
            details["operation"] = operation
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            f"{self.CODE_PREFIX}001",
            details,
        )


class IntegrityException(DomainException):
    """
    Raised when an owning parent cannot be resolved for a child entity.

    The orphaned record is left as is for out-of-band repair; cached
    progress above it keeps its previous value.
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        parent_type: str,
        parent_id: Any,
        operation: Optional[str] = None,
    ):
        details = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "parent_type": parent_type,
            "parent_id": parent_id,
        }
        if operation:
            details["operation"] = operation
        super().__init__(
            f"{entity_type} {entity_id} references missing {parent_type} {parent_id}",
            f"{self.CODE_PREFIX}002",
            details,
        )


# Validation exceptions
class ValidationException(BookingProgressException):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, List[str]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = dict(details or {})
        error_details["validation_errors"] = validation_errors or {}
        super().__init__(message, "VALIDATION_001", error_details)


class InvalidStatusTransitionException(ValidationException):
    """Raised when a task or milestone status change is not allowed."""

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_status: str,
        new_status: str,
        allowed_transitions: Optional[List[str]] = None,
    ):
        super().__init__(
            f"Invalid status transition for {entity_type} {entity_id}: {current_status} -> {new_status}",
            {"status": [f"Cannot move from {current_status} to {new_status}"]},
            {
                "entity_type": entity_type,
                "entity_id": entity_id,
                "current_status": current_status,
                "new_status": new_status,
                "allowed_transitions": allowed_transitions or [],
            },
        )


# Concurrency exceptions
class ConcurrentModificationException(BookingProgressException):
    """Raised when recomputes of the same row keep racing after retries."""

    def __init__(
        self,
        message: str,
        entity_type: Optional[str] = None,
        entity_id: Any = None,
        attempts: Optional[int] = None,
    ):
        details = {}
        if entity_type is not None:
            details["entity_type"] = entity_type
        if entity_id is not None:
            details["entity_id"] = entity_id
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(message, "CONCURRENCY_001", details)


# Security exceptions
class SecurityException(BookingProgressException):
    """Base exception for security-related errors."""

    CODE_PREFIX = "SECURITY_"


class ForbiddenException(SecurityException):
    """Raised when a caller has no client/provider/admin relation to a booking."""

    def __init__(self, resource_type: str, resource_id: Any = None, operation: Optional[str] = None):
        details = {"resource_type": resource_type}
        if resource_id is not None:
            details["resource_id"] = resource_id
        if operation:
            details["operation"] = operation
        super().__init__(
            f"Access forbidden to {resource_type}"
            + (f" with ID {resource_id}" if resource_id is not None else ""),
            f"{self.CODE_PREFIX}002",
            details,
        )


class AuthenticationException(SecurityException):
    """Raised when the caller's token cannot be decoded."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, f"{self.CODE_PREFIX}003", {})

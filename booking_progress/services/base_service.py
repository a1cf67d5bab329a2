# File: booking_progress/services/base_service.py

from typing import Any, Optional
from contextlib import contextmanager
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
import logging

from booking_progress.core.events import EventBus, global_event_bus
from booking_progress.core.exceptions import BookingProgressException, EntityNotFoundException
from booking_progress.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Driver messages for lock failures that a fresh attempt can resolve
LOCK_CONFLICT_MARKERS = ("deadlock", "lock wait timeout", "could not serialize", "database is locked")


def is_lock_conflict(error: Exception) -> bool:
    """True for database errors caused by competing row locks."""
    if not isinstance(error, OperationalError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in LOCK_CONFLICT_MARKERS)


class BaseService:
    """
    Base service for the booking progress services.

    Provides common functionality including:
    - Transaction management
    - Entity lookup with not-found handling
    - Operation logging
    """

    def __init__(self, session: Session, event_bus: Optional[EventBus] = None):
        """
        Initialize service with dependencies.

        Args:
            session: Database session for persistence operations
            event_bus: Bus change events are published to after commit
        """
        self.session = session
        self.event_bus = event_bus if event_bus is not None else global_event_bus

    @contextmanager
    def transaction(self):
        """
        Provide a transactional scope around operations.

        Commits on success, rolls back and re-raises on any error.

        Raises:
            Exception: Any exception that occurs during transaction execution
        """
        try:
            yield
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            if isinstance(e, (BookingProgressException, StaleDataError)) or is_lock_conflict(e):
                # Expected outcomes, handled by the caller
                logger.debug(f"Transaction rolled back: {e}")
            else:
                logger.error(f"Transaction failed: {str(e)}", exc_info=True)
            raise

    def get_entity_or_404(self, repository: BaseRepository, entity_id: Any, **kwargs) -> Any:
        """
        Get an entity or raise EntityNotFoundException.

        Args:
            repository: Repository to read from
            entity_id: Primary key
            **kwargs: Passed to the repository (for_update, fresh)

        Raises:
            EntityNotFoundException: If the entity doesn't exist
        """
        entity = repository.get_by_id(entity_id, **kwargs)
        if entity is None:
            raise EntityNotFoundException(repository.model.__name__, entity_id)
        return entity

    def _log_operation(self, operation: str, details: Any = None) -> None:
        """
        Log a service operation at INFO level.

        Args:
            operation: Name of the operation
            details: Optional details to include
        """
        message = f"{self.__class__.__name__}: {operation}"
        if details:
            message += f" - {details}"
        logger.info(message)

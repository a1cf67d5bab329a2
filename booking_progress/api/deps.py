# File: booking_progress/api/deps.py
"""
FastAPI dependencies for the booking progress API.

Provides dependency functions for database sessions, caller
authentication and service injection for API routes.
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from booking_progress.core.config import settings
from booking_progress.core.events import EventBus, global_event_bus
from booking_progress.core.security import decode_access_token

# Database session provider
from booking_progress.db.session import get_db

from booking_progress.services.progress_service import Caller, ProgressService

logger = logging.getLogger(__name__)

# --- Authentication ---
# Tokens come from the platform's auth service; a missing token is reported
# as AuthenticationException (401) by the app's exception handler.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_V1_STR}/auth/token", auto_error=False)


def caller_from_token(token: Optional[str]) -> Caller:
    """Decode a bearer token into the Caller it identifies."""
    payload = decode_access_token(token)
    logger.debug(f"Authenticated caller {payload.sub} ({payload.role.value})")
    return Caller(id=payload.sub, role=payload.role)


def get_current_caller(token: Optional[str] = Depends(oauth2_scheme)) -> Caller:
    """Get the authenticated caller from the Authorization header."""
    return caller_from_token(token)


# --- Service Dependency Injectors ---

def get_event_bus() -> EventBus:
    """Provides the process-wide event bus."""
    return global_event_bus


def get_progress_service(
        db: Session = Depends(get_db),
        event_bus: EventBus = Depends(get_event_bus),
) -> ProgressService:
    """Provides an instance of ProgressService."""
    logger.debug("Providing ProgressService instance.")
    return ProgressService(db, event_bus=event_bus)

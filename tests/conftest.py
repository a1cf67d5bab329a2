# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database, factories for bookings,
milestones and tasks, callers for each role and a private event bus.

Foreign keys are not enforced on the test engine so orphaned rows can be
created on purpose.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from booking_progress.core.events import EntityChangedEvent, EventBus
from booking_progress.db.models import Base, Booking, Invoice, Milestone, Task
from booking_progress.db.models.enums import CallerRole, ProgressMode
from booking_progress.services.progress_service import Caller, ProgressService
from booking_progress.services.recalculation_service import RecalculationService

CLIENT_ID = "client-1"
PROVIDER_ID = "provider-1"

FIXED_NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=True, bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def client_caller():
    return Caller(id=CLIENT_ID, role=CallerRole.CLIENT)


@pytest.fixture
def provider_caller():
    return Caller(id=PROVIDER_ID, role=CallerRole.PROVIDER)


@pytest.fixture
def admin_caller():
    return Caller(id="admin-1", role=CallerRole.ADMIN)


@pytest.fixture
def stranger_caller():
    return Caller(id="someone-else", role=CallerRole.PROVIDER)


@pytest.fixture
def make_booking(db):
    def _make(**kwargs) -> Booking:
        data: Dict[str, Any] = {
            "client_id": CLIENT_ID,
            "provider_id": PROVIDER_ID,
            "title": "Social media campaign",
            "status": "in_progress",
            "approval_status": "approved",
        }
        data.update(kwargs)
        booking = Booking(**data)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_milestone(db):
    def _make(booking_id: int, **kwargs) -> Milestone:
        data: Dict[str, Any] = {"title": "Milestone", "weight": 1.0, "status": "pending"}
        data.update(kwargs)
        milestone = Milestone(booking_id=booking_id, **data)
        db.add(milestone)
        db.commit()
        return milestone

    return _make


@pytest.fixture
def make_task(db):
    def _make(milestone_id: int, **kwargs) -> Task:
        data: Dict[str, Any] = {"title": "Task", "status": "pending"}
        if kwargs.get("status") == "completed":
            data["progress_percentage"] = 100
        data.update(kwargs)
        task = Task(milestone_id=milestone_id, **data)
        db.add(task)
        db.commit()
        return task

    return _make


@pytest.fixture
def make_invoice(db):
    def _make(booking_id: int, **kwargs) -> Invoice:
        invoice = Invoice(booking_id=booking_id, **kwargs)
        db.add(invoice)
        db.commit()
        return invoice

    return _make


@pytest.fixture
def progress_service(db, event_bus):
    return ProgressService(
        db,
        event_bus=event_bus,
        mode=ProgressMode.COMPLETION_RATIO,
        max_retries=1,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def recalculation_service(db, event_bus):
    return RecalculationService(db, event_bus=event_bus, mode=ProgressMode.COMPLETION_RATIO, max_retries=1)


@pytest.fixture
def record_events(event_bus):
    """Subscribe a recorder to a booking's channel; returns the list it fills."""

    def _record(booking_id: int) -> List[EntityChangedEvent]:
        received: List[EntityChangedEvent] = []
        event_bus.subscribe(booking_id, received.append)
        return received

    return _record

# File: booking_progress/api/endpoints/progress.py
"""
Progress API endpoints.

Provides the booking progress read model, an on-demand recompute and a
WebSocket stream of change events for one booking.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from booking_progress.api.deps import caller_from_token, get_current_caller, get_event_bus, get_progress_service
from booking_progress.core.events import EntityChangedEvent, EventBus
from booking_progress.core.exceptions import AuthenticationException, DomainException, SecurityException
from booking_progress.db.session import get_db
from booking_progress.schemas.progress import ProgressResponse, RecomputeResponse
from booking_progress.services.progress_service import Caller, ProgressService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{booking_id}", response_model=ProgressResponse)
def get_progress(
    *,
    booking_id: int = Path(..., ge=1, description="Booking ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    """
    Get milestones, tasks and aggregate progress of a booking.

    Overdue flags and the display status are derived at read time.
    """
    logger.info(f"Caller {caller.id} reading progress of booking {booking_id}")
    return ProgressResponse.model_validate(progress_service.get_progress(booking_id, caller))


@router.post("/{booking_id}/recalculate", response_model=RecomputeResponse)
def recalculate_progress(
    *,
    booking_id: int = Path(..., ge=1, description="Booking ID"),
    caller: Caller = Depends(get_current_caller),
    progress_service: ProgressService = Depends(get_progress_service),
) -> RecomputeResponse:
    """Recompute every cached percentage of a booking from its tasks."""
    logger.info(f"Caller {caller.id} recalculating booking {booking_id}")
    result = progress_service.recompute(booking_id, caller)
    return RecomputeResponse(
        booking_id=result.booking_id,
        project_progress=result.project_progress,
        milestone_progress=result.milestone_progress,
        attempts=result.attempts,
    )


@router.websocket("/{booking_id}/ws")
async def progress_updates(
    websocket: WebSocket,
    booking_id: int,
    token: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    event_bus: EventBus = Depends(get_event_bus),
):
    """
    Stream change events of a booking as JSON.

    The bus may publish from worker threads (sync endpoints run on a thread
    pool), so deliveries are handed to this connection's loop through a
    queue.
    """
    progress_service = ProgressService(db, event_bus=event_bus)
    loop = asyncio.get_running_loop()
    queue: "asyncio.Queue[dict]" = asyncio.Queue()

    def forward(event: EntityChangedEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event.to_dict())

    try:
        caller = caller_from_token(token)
        subscription = progress_service.subscribe(booking_id, forward, caller)
    except (AuthenticationException, SecurityException, DomainException) as e:
        logger.warning(f"Rejected progress stream for booking {booking_id}: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    finally:
        # Access is checked once; the stream itself needs no session
        db.close()

    await websocket.accept()
    logger.info(f"Caller {caller.id} streaming progress of booking {booking_id}")

    async def send_events():
        while True:
            await websocket.send_json(await queue.get())

    async def watch_disconnect():
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(send_events()), asyncio.create_task(watch_disconnect())]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            error = task.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Progress stream for booking {booking_id} failed: {error}", exc_info=error)
    finally:
        progress_service.unsubscribe(subscription)
        logger.info(f"Caller {caller.id} stopped streaming booking {booking_id}")

# File: booking_progress/api/api.py

from fastapi import APIRouter

from booking_progress.api.endpoints import (
    bookings,
    milestones,
    progress,
    tasks,
)

api_router = APIRouter()

api_router.include_router(progress.router, prefix="/progress", tags=["Progress"])
api_router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(milestones.router, prefix="/milestones", tags=["Milestones"])
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

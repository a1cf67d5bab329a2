# File: booking_progress/api/endpoints/__init__.py
"""
API endpoints package for the booking progress service.
"""

from booking_progress.api.endpoints import (
    bookings,
    milestones,
    progress,
    tasks,
)

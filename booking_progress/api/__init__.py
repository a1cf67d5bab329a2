# File: booking_progress/api/__init__.py
"""
API package for the booking progress service.

This package contains the API layer, including endpoints, dependencies,
and routing configuration.
"""

from booking_progress.api import deps, endpoints
from booking_progress.api.api import api_router

# File: booking_progress/schemas/token.py
"""
Authentication token schemas for the booking progress API.
"""

from typing import Optional
from pydantic import BaseModel, Field

from booking_progress.db.models.enums import CallerRole


class TokenPayload(BaseModel):
    """
    Schema for the contents of JWT token payload.

    Contains the user identifier and the user's marketplace role.
    """

    sub: str = Field(..., min_length=1, description="Subject identifier (user ID)")
    role: CallerRole = Field(CallerRole.CLIENT, description="Marketplace role")
    exp: Optional[int] = Field(None, description="Token expiration timestamp")
    type: Optional[str] = Field(None, description="Token type")

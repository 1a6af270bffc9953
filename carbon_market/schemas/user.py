"""
Pydantic schemas for the member profile.

total_offset appears only in the response: it is maintained by the impact
ledger and cannot be written through the profile endpoint.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    """A member's profile, including the cumulative offset counter."""
    user_id: uuid.UUID
    first_name: str | None
    last_name: str | None
    bio: str | None
    location: str | None
    total_offset: int
    badge: str
    created_at: datetime
    updated_at: datetime


class ProfileUpdateRequest(BaseModel):
    """Request body for PUT /users/profile. Omitted fields are unchanged."""
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    bio: str | None = Field(None, max_length=500)
    location: str | None = Field(None, max_length=255)

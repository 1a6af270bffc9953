"""Pydantic schemas for project reviews."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from carbon_market.schemas.common import Pagination


class ReviewRequest(BaseModel):
    """Request body for POST /projects/{id}/reviews."""
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(None, min_length=10, max_length=500)


class ReviewResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    user_id: uuid.UUID
    rating: int
    comment: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReviewListResponse(BaseModel):
    reviews: list[ReviewResponse]
    pagination: Pagination
    average_rating: float
    total_reviews: int

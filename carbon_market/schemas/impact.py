"""Pydantic schemas for the impact ledger and leaderboard."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from carbon_market.models.impact import ImpactType
from carbon_market.schemas.common import Pagination


class ImpactCreateRequest(BaseModel):
    """Request body for POST /impact."""
    impact_type: ImpactType
    value: int = Field(gt=0)
    unit: str = Field(min_length=1, max_length=50)
    description: str = Field(min_length=10, max_length=500)
    project_id: uuid.UUID | None = None


class ImpactResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID | None
    transaction_id: uuid.UUID | None
    impact_type: ImpactType
    value: int
    unit: str
    description: str | None
    verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ImpactStat(BaseModel):
    impact_type: ImpactType
    total_value: int
    count: int


class ImpactListResponse(BaseModel):
    impacts: list[ImpactResponse]
    stats: list[ImpactStat]
    pagination: Pagination


class OffsetSummaryResponse(BaseModel):
    """
    Cached vs. computed offset for the caller.

    `match` compares the profile's total_offset with the sum of the
    CARBON_OFFSET ledger entries. A mismatch indicates a data integrity
    issue.
    """
    user_id: uuid.UUID
    cached_total_offset: int
    computed_total_offset: int
    match: bool


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: uuid.UUID
    name: str | None
    score: int
    unit: str
    badge: str


class LeaderboardResponse(BaseModel):
    type: str
    period: str
    entries: list[LeaderboardEntry]

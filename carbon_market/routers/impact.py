"""
Impact router — the caller's impact ledger and the community leaderboard.

Endpoints:
  POST /impact              — Record a manual impact entry
  GET  /impact              — My entries (filtered, paginated) with per-type stats
  GET  /impact/summary      — Cached total_offset vs. ledger sum
  GET  /impact/leaderboard  — Top members by offset, projects or verified impact

Purchases add CARBON_OFFSET entries automatically at settlement; the
POST endpoint is for activity outside the marketplace.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import get_current_member, get_current_user
from carbon_market.models.impact import ImpactType
from carbon_market.models.user import User
from carbon_market.schemas.common import Pagination
from carbon_market.schemas.impact import (
    ImpactCreateRequest,
    ImpactListResponse,
    ImpactResponse,
    ImpactStat,
    LeaderboardEntry,
    LeaderboardResponse,
    OffsetSummaryResponse,
)
from carbon_market.services import impact_service

router = APIRouter()


@router.post(
    "",
    response_model=ImpactResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record an impact entry",
)
async def record_impact(
    request: ImpactCreateRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Self-reported entries are stored unverified."""
    return await impact_service.record_impact(
        db,
        user_id=user.id,
        impact_type=request.impact_type,
        value=request.value,
        unit=request.unit,
        description=request.description,
        project_id=request.project_id,
    )


@router.get("", response_model=ImpactListResponse, summary="My impact ledger")
async def list_impacts(
    impact_type: ImpactType | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    impacts, total = await impact_service.list_impacts(
        db, user.id, impact_type=impact_type, page=page, limit=limit
    )
    stats = await impact_service.get_impact_stats(db, user.id)
    return ImpactListResponse(
        impacts=[ImpactResponse.model_validate(i) for i in impacts],
        stats=[ImpactStat(**s) for s in stats],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/summary", response_model=OffsetSummaryResponse, summary="Offset reconciliation")
async def offset_summary(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Compare the profile's total_offset with the sum of the caller's
    CARBON_OFFSET entries. `match` is False only if the two have drifted.
    """
    return await impact_service.get_offset_summary(db, user.id)


@router.get("/leaderboard", response_model=LeaderboardResponse, summary="Leaderboard")
async def leaderboard(
    leaderboard_type: str = Query(
        "total_offset",
        alias="type",
        description="total_offset, projects_created or climate_impact",
    ),
    period: str = Query("all_time", description="all_time, week, month or year"),
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    entries = await impact_service.get_leaderboard(
        db, period=period, limit=limit, leaderboard_type=leaderboard_type
    )
    return LeaderboardResponse(
        type=leaderboard_type,
        period=period,
        entries=[LeaderboardEntry(**e) for e in entries],
    )

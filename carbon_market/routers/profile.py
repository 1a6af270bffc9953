"""
Profile router — the authenticated member's profile.

Endpoints:
  GET /users/profile  — Profile including total_offset and badge
  PUT /users/profile  — Update display fields (total_offset is read-only)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import get_current_member
from carbon_market.models.user import User
from carbon_market.models.user_profile import UserProfile
from carbon_market.schemas.user import ProfileResponse, ProfileUpdateRequest
from carbon_market.services import impact_service

router = APIRouter()


def _to_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.user_id,
        first_name=profile.first_name,
        last_name=profile.last_name,
        bio=profile.bio,
        location=profile.location,
        total_offset=profile.total_offset,
        badge=impact_service.badge_for_offset(profile.total_offset),
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


@router.get("/profile", response_model=ProfileResponse, summary="Get my profile")
async def get_profile(
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    profile = await impact_service.get_profile(db, user.id)
    return _to_response(profile)


@router.put("/profile", response_model=ProfileResponse, summary="Update my profile")
async def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Only the fields present in the request body are changed."""
    profile = await impact_service.update_profile(
        db, user.id, request.model_dump(exclude_unset=True)
    )
    await db.refresh(profile)
    return _to_response(profile)

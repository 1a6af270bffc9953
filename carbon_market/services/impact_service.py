"""
Impact service — the append-only impact ledger and the profile counter.

record_impact() is the ONLY writer of UserProfile.total_offset. It inserts
the ledger row and, for CARBON_OFFSET entries, increments the counter in
the same database transaction. The increment is a single SQL expression
(`total_offset = total_offset + :value`) rather than read-modify-write, so
two requests crediting the same member concurrently cannot lose an update.

Reconciliation:
  get_offset_summary() recomputes the sum of CARBON_OFFSET ledger values and
  compares it to the cached counter — the same cached-vs-computed check a
  ledger-backed balance would offer. `match` must always be True.

Leaderboard:
  all_time ranks members by the cached counter; bounded periods (week,
  month, year) rank by the ledger sum inside the window, since the counter
  has no time dimension.
  Two further types rank members by projects submitted and by the sum of
  their verified ledger entries, each with its own badge table.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import NotFoundError, ValidationError
from carbon_market.models.impact import ImpactType, UserImpact
from carbon_market.models.project import CarbonProject
from carbon_market.models.user_profile import UserProfile

logger = logging.getLogger(__name__)

LEADERBOARD_PERIODS = {
    "all_time": None,
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
}

# (threshold, badge), first match wins
OFFSET_BADGES = (
    (1000, "Climate Champion"),
    (500, "Green Leader"),
    (100, "Eco Warrior"),
    (50, "Nature Lover"),
)

PROJECT_BADGES = (
    (10, "Project Master"),
    (5, "Builder"),
    (2, "Creator"),
)

IMPACT_BADGES = (
    (1000, "Impact Hero"),
    (500, "Change Maker"),
    (100, "Achiever"),
    (10, "Growing"),
)

# type -> (unit, badge table, badge below every threshold)
LEADERBOARD_TYPES = {
    "total_offset": ("credits", OFFSET_BADGES, "Getting Started"),
    "projects_created": ("projects", PROJECT_BADGES, "Starter"),
    "climate_impact": ("impact points", IMPACT_BADGES, "Getting Started"),
}


def _badge(score: int, badges: tuple, default: str) -> str:
    for threshold, badge in badges:
        if score >= threshold:
            return badge
    return default


def badge_for_offset(total_offset: int) -> str:
    """Static badge for a cumulative offset, in credits."""
    return _badge(total_offset, OFFSET_BADGES, "Getting Started")


async def _increment_total_offset(db: AsyncSession, user_id: uuid.UUID, value: int) -> None:
    """Add `value` to a member's counter, creating the profile if absent."""
    result = await db.execute(
        update(UserProfile)
        .where(UserProfile.user_id == user_id)
        .values(total_offset=UserProfile.total_offset + value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.add(UserProfile(user_id=user_id, total_offset=value))
        await db.flush()


async def record_impact(
    db: AsyncSession,
    user_id: uuid.UUID,
    impact_type: ImpactType,
    value: int,
    unit: str,
    description: str | None = None,
    project_id: uuid.UUID | None = None,
    transaction_id: uuid.UUID | None = None,
    verified: bool = False,
) -> UserImpact:
    """
    Append an entry to the impact ledger.

    CARBON_OFFSET entries also increment the member's total_offset in the
    same database transaction.

    Raises:
        ValidationError: If value is not positive.
        NotFoundError: If project_id is given but doesn't exist.
    """
    if value <= 0:
        raise ValidationError("Impact value must be positive")

    if project_id is not None and await db.get(CarbonProject, project_id) is None:
        raise NotFoundError("Project", project_id)

    impact = UserImpact(
        user_id=user_id,
        impact_type=impact_type,
        value=value,
        unit=unit,
        description=description,
        project_id=project_id,
        transaction_id=transaction_id,
        verified=verified,
    )
    db.add(impact)
    await db.flush()

    if impact_type == ImpactType.CARBON_OFFSET:
        await _increment_total_offset(db, user_id, value)

    return impact


async def list_impacts(
    db: AsyncSession,
    user_id: uuid.UUID,
    impact_type: ImpactType | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[UserImpact], int]:
    """
    List a member's ledger entries, newest first.

    Returns:
        Tuple of (entries on this page, total matching entries).
    """
    conditions = [UserImpact.user_id == user_id]
    if impact_type is not None:
        conditions.append(UserImpact.impact_type == impact_type)

    total = (
        await db.execute(select(func.count(UserImpact.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(UserImpact)
        .where(*conditions)
        .order_by(UserImpact.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def get_impact_stats(db: AsyncSession, user_id: uuid.UUID) -> list[dict]:
    """Per-type totals (sum of value, number of entries) for a member."""
    result = await db.execute(
        select(
            UserImpact.impact_type,
            func.sum(UserImpact.value),
            func.count(UserImpact.id),
        )
        .where(UserImpact.user_id == user_id)
        .group_by(UserImpact.impact_type)
        .order_by(UserImpact.impact_type)
    )
    return [
        {"impact_type": impact_type, "total_value": total or 0, "count": count}
        for impact_type, total, count in result.all()
    ]


async def get_offset_summary(db: AsyncSession, user_id: uuid.UUID) -> dict:
    """
    Compare the cached total_offset with the sum of the ledger.

    Returns:
        Dict with cached_total_offset, computed_total_offset and match.
    """
    cached = (
        await db.execute(
            select(UserProfile.total_offset).where(UserProfile.user_id == user_id)
        )
    ).scalar_one_or_none() or 0

    computed = (
        await db.execute(
            select(func.coalesce(func.sum(UserImpact.value), 0))
            .where(UserImpact.user_id == user_id)
            .where(UserImpact.impact_type == ImpactType.CARBON_OFFSET)
        )
    ).scalar_one()

    return {
        "user_id": user_id,
        "cached_total_offset": cached,
        "computed_total_offset": computed,
        "match": cached == computed,
    }


async def get_leaderboard(
    db: AsyncSession,
    period: str = "all_time",
    limit: int = 50,
    leaderboard_type: str = "total_offset",
) -> list[dict]:
    """
    Rank members for one leaderboard type.

    Types:
      total_offset      credits offset (cached counter, or ledger sum in a period)
      projects_created  active projects submitted
      climate_impact    sum of verified ledger entries of every impact type

    Raises:
        ValidationError: If the period or type is not recognised.
    """
    if period not in LEADERBOARD_PERIODS:
        raise ValidationError(f"Invalid leaderboard period: {period}")
    if leaderboard_type not in LEADERBOARD_TYPES:
        raise ValidationError(f"Invalid leaderboard type: {leaderboard_type}")

    window = LEADERBOARD_PERIODS[period]
    since = datetime.now(timezone.utc) - window if window is not None else None
    unit, badges, default_badge = LEADERBOARD_TYPES[leaderboard_type]

    if leaderboard_type == "total_offset" and since is None:
        query = (
            select(
                UserProfile.user_id,
                UserProfile.first_name,
                UserProfile.last_name,
                UserProfile.total_offset,
            )
            .where(UserProfile.total_offset > 0)
            .order_by(UserProfile.total_offset.desc(), UserProfile.created_at)
        )
    elif leaderboard_type == "projects_created":
        score = func.count(CarbonProject.id).label("score")
        query = (
            select(CarbonProject.owner_id, UserProfile.first_name, UserProfile.last_name, score)
            .join(UserProfile, UserProfile.user_id == CarbonProject.owner_id, isouter=True)
            .where(CarbonProject.is_active.is_(True))
            .group_by(CarbonProject.owner_id, UserProfile.first_name, UserProfile.last_name)
            .order_by(score.desc())
        )
        if since is not None:
            query = query.where(CarbonProject.created_at >= since)
    else:
        score = func.sum(UserImpact.value).label("score")
        query = (
            select(UserImpact.user_id, UserProfile.first_name, UserProfile.last_name, score)
            .join(UserProfile, UserProfile.user_id == UserImpact.user_id, isouter=True)
            .group_by(UserImpact.user_id, UserProfile.first_name, UserProfile.last_name)
            .order_by(score.desc())
        )
        if leaderboard_type == "total_offset":
            query = query.where(UserImpact.impact_type == ImpactType.CARBON_OFFSET)
        else:
            query = query.where(UserImpact.verified.is_(True))
        if since is not None:
            query = query.where(UserImpact.created_at >= since)

    result = await db.execute(query.limit(limit))
    return [
        {
            "rank": rank,
            "user_id": user_id,
            "name": " ".join(part for part in (first_name, last_name) if part) or None,
            "score": score,
            "unit": unit,
            "badge": _badge(score, badges, default_badge),
        }
        for rank, (user_id, first_name, last_name, score) in enumerate(result.all(), start=1)
    ]


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

async def get_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
    """
    Get a member's profile.

    Raises:
        NotFoundError: If the member has no profile row.
    """
    result = await db.execute(
        select(UserProfile)
        .where(UserProfile.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError("Profile")
    return profile


async def update_profile(
    db: AsyncSession,
    user_id: uuid.UUID,
    updates: dict,
) -> UserProfile:
    """
    Update a member's display fields.

    total_offset is never accepted here; it moves only through record_impact().
    """
    profile = await get_profile(db, user_id)
    for field in ("first_name", "last_name", "bio", "location"):
        if field in updates:
            setattr(profile, field, updates[field])
    await db.flush()
    return profile

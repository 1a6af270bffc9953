"""
Project service — project submission, discovery and verification.

Verification is the only step with side effects beyond the project row:
an APPROVED decision mints the project's credits. Minting happens at most
once per project — the `credits_minted` flag is flipped with a conditional
UPDATE (`WHERE credits_minted = false`), so two concurrent approvals cannot
both mint.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import NotFoundError
from carbon_market.models.project import (
    CarbonProject,
    CarbonStandard,
    ProjectStatus,
    ProjectType,
    ProjectVerification,
    VerificationDecision,
)
from carbon_market.services import credit_service

logger = logging.getLogger(__name__)

# Decision -> resulting project status
_DECISION_STATUS = {
    VerificationDecision.APPROVED: ProjectStatus.VERIFIED,
    VerificationDecision.REJECTED: ProjectStatus.REJECTED,
    VerificationDecision.REQUIRES_REVISION: ProjectStatus.UNDER_REVIEW,
}

SORTABLE_FIELDS = {
    "created_at": CarbonProject.created_at,
    "price_per_credit_cents": CarbonProject.price_per_credit_cents,
    "estimated_credits": CarbonProject.estimated_credits,
    "title": CarbonProject.title,
}


async def create_project(
    db: AsyncSession,
    owner_id: uuid.UUID,
    data: dict,
) -> CarbonProject:
    """Submit a new project; it starts PENDING with no credits."""
    project = CarbonProject(owner_id=owner_id, status=ProjectStatus.PENDING, **data)
    db.add(project)
    await db.flush()
    logger.info("Project %s submitted by %s", project.id, owner_id)
    return project


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> CarbonProject:
    """
    Get an active project by ID.

    Raises:
        NotFoundError: If the project doesn't exist or has been deactivated.
    """
    result = await db.execute(
        select(CarbonProject)
        .where(CarbonProject.id == project_id)
        .where(CarbonProject.is_active.is_(True))
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise NotFoundError("Project", project_id)
    return project


async def list_projects(
    db: AsyncSession,
    project_type: ProjectType | None = None,
    standard: CarbonStandard | None = None,
    country: str | None = None,
    status_filter: ProjectStatus | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[CarbonProject], int]:
    """
    List active projects with optional filters.

    `search` matches title, description or location case-insensitively.

    Returns:
        Tuple of (projects on this page, total matching projects).
    """
    conditions = [CarbonProject.is_active.is_(True)]
    if project_type is not None:
        conditions.append(CarbonProject.project_type == project_type)
    if standard is not None:
        conditions.append(CarbonProject.standard == standard)
    if country:
        conditions.append(CarbonProject.country == country)
    if status_filter is not None:
        conditions.append(CarbonProject.status == status_filter)
    if min_price_cents is not None:
        conditions.append(CarbonProject.price_per_credit_cents >= min_price_cents)
    if max_price_cents is not None:
        conditions.append(CarbonProject.price_per_credit_cents <= max_price_cents)
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                CarbonProject.title.ilike(pattern),
                CarbonProject.description.ilike(pattern),
                CarbonProject.location.ilike(pattern),
            )
        )

    total = (
        await db.execute(select(func.count(CarbonProject.id)).where(*conditions))
    ).scalar_one()

    sort_column = SORTABLE_FIELDS.get(sort_by, CarbonProject.created_at)
    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()

    result = await db.execute(
        select(CarbonProject)
        .where(*conditions)
        .order_by(ordering)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def verify_project(
    db: AsyncSession,
    project_id: uuid.UUID,
    verifier_id: uuid.UUID,
    decision: VerificationDecision,
    comments: str | None = None,
) -> tuple[CarbonProject, ProjectVerification, int]:
    """
    Record an administrator's decision on a project.

    APPROVED marks the project VERIFIED and mints `estimated_credits`
    credits, unless they were already minted by an earlier approval.

    Returns:
        Tuple of (project, verification record, number of credits minted).

    Raises:
        NotFoundError: If the project doesn't exist.
    """
    project = await get_project(db, project_id)
    now = datetime.now(timezone.utc)

    project.status = _DECISION_STATUS[decision]
    if decision == VerificationDecision.APPROVED:
        project.verification_date = now

    verification = ProjectVerification(
        project_id=project.id,
        verifier_id=verifier_id,
        decision=decision,
        comments=comments,
        verified_at=now if decision == VerificationDecision.APPROVED else None,
    )
    db.add(verification)
    await db.flush()

    minted = 0
    if decision == VerificationDecision.APPROVED:
        claim = await db.execute(
            update(CarbonProject)
            .where(CarbonProject.id == project.id)
            .where(CarbonProject.credits_minted.is_(False))
            .values(credits_minted=True)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount == 1:
            minted = await credit_service.mint_credits(db, project)
        else:
            logger.info("Project %s already has minted credits; approval mints none", project.id)
        project.credits_minted = True

    logger.info("Project %s verified by %s: %s", project.id, verifier_id, decision.value)
    return project, verification, minted


async def list_verifications(
    db: AsyncSession,
    project_id: uuid.UUID,
) -> list[ProjectVerification]:
    """Verification history for a project, newest first."""
    await get_project(db, project_id)
    result = await db.execute(
        select(ProjectVerification)
        .where(ProjectVerification.project_id == project_id)
        .order_by(ProjectVerification.created_at.desc())
    )
    return list(result.scalars().all())


"""
Projects router — submission, discovery and verification.

Endpoints:
  POST /projects                      — Submit a project (member)
  GET  /projects                      — Browse projects (public, filtered, paginated)
  GET  /projects/{id}                 — Project detail with available credit count
  POST /projects/{id}/verify          — Record a verification decision (admin)
  GET  /projects/{id}/verifications   — Verification history
  POST /projects/{id}/reviews         — Rate a project (member with a completed purchase)
  GET  /projects/{id}/reviews         — Reviews with the average rating
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import get_current_member, require_admin
from carbon_market.models.project import CarbonStandard, ProjectStatus, ProjectType
from carbon_market.models.user import User
from carbon_market.schemas.common import Pagination
from carbon_market.schemas.project import (
    ProjectCreateRequest,
    ProjectDetailResponse,
    ProjectListResponse,
    ProjectResponse,
    VerificationRequest,
    VerificationResponse,
    VerifyProjectResponse,
)
from carbon_market.schemas.review import ReviewListResponse, ReviewRequest, ReviewResponse
from carbon_market.services import credit_service, project_service, review_service

router = APIRouter()


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a carbon project",
)
async def create_project(
    request: ProjectCreateRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Submit a project for verification.

    The project starts PENDING and has no credits until an administrator
    approves it.
    """
    data = request.model_dump()
    data["currency"] = data["currency"].upper()
    return await project_service.create_project(db, user.id, data)


@router.get("", response_model=ProjectListResponse, summary="Browse projects")
async def list_projects(
    project_type: ProjectType | None = Query(None),
    standard: CarbonStandard | None = Query(None),
    country: str | None = Query(None),
    status_filter: ProjectStatus | None = Query(None, alias="status"),
    min_price_cents: int | None = Query(None, ge=0),
    max_price_cents: int | None = Query(None, ge=0),
    search: str | None = Query(None, max_length=200),
    sort_by: str = Query("created_at", pattern="^(created_at|price_per_credit_cents|estimated_credits|title)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    projects, total = await project_service.list_projects(
        db,
        project_type=project_type,
        standard=standard,
        country=country,
        status_filter=status_filter,
        min_price_cents=min_price_cents,
        max_price_cents=max_price_cents,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    return ProjectListResponse(
        projects=[ProjectResponse.model_validate(p) for p in projects],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{project_id}", response_model=ProjectDetailResponse, summary="Get a project")
async def get_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    project = await project_service.get_project(db, project_id)
    available = await credit_service.count_available(db, project.id)
    return ProjectDetailResponse(
        **ProjectResponse.model_validate(project).model_dump(),
        available_credits=available,
    )


@router.post(
    "/{project_id}/verify",
    response_model=VerifyProjectResponse,
    summary="[Admin] Verify a project",
)
async def verify_project(
    project_id: uuid.UUID,
    request: VerificationRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Record a verification decision.

    - **APPROVED**: project becomes VERIFIED and one credit is minted per
      estimated tonne (only the first approval mints)
    - **REJECTED**: project becomes REJECTED
    - **REQUIRES_REVISION**: project goes back UNDER_REVIEW
    """
    project, verification, minted = await project_service.verify_project(
        db,
        project_id=project_id,
        verifier_id=admin.id,
        decision=request.decision,
        comments=request.comments,
    )
    return VerifyProjectResponse(
        project=ProjectResponse.model_validate(project),
        verification=VerificationResponse.model_validate(verification),
        credits_minted=minted,
    )


@router.get(
    "/{project_id}/verifications",
    response_model=list[VerificationResponse],
    summary="Verification history",
)
async def list_verifications(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await project_service.list_verifications(db, project_id)


@router.post(
    "/{project_id}/reviews",
    response_model=ReviewResponse,
    summary="Review a project",
)
async def submit_review(
    project_id: uuid.UUID,
    request: ReviewRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Rate a project from 1 to 5, with an optional comment.

    Only members who have completed a purchase from the project may review
    it (403 otherwise). Submitting again replaces the earlier review.
    """
    return await review_service.submit_review(
        db,
        project_id=project_id,
        user_id=user.id,
        rating=request.rating,
        comment=request.comment,
    )


@router.get("/{project_id}/reviews", response_model=ReviewListResponse, summary="Project reviews")
async def list_reviews(
    project_id: uuid.UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    reviews, total, average = await review_service.list_reviews(db, project_id, page=page, limit=limit)
    return ReviewListResponse(
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
        pagination=Pagination.build(page, limit, total),
        average_rating=average,
        total_reviews=total,
    )

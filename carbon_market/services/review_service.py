"""
Review service — buyer ratings of projects.

A review is accepted only from a member who has a COMPLETED transaction
for the project, i.e. one whose payment the settlement handler applied.
A pending checkout, or one that failed, does not qualify.
"""

import logging
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import UnauthorizedAccessError
from carbon_market.models.review import ProjectReview
from carbon_market.models.transaction import Transaction, TransactionStatus
from carbon_market.services import project_service

logger = logging.getLogger(__name__)


async def has_completed_purchase(
    db: AsyncSession,
    user_id: uuid.UUID,
    project_id: uuid.UUID,
) -> bool:
    result = await db.execute(
        select(Transaction.id)
        .where(Transaction.user_id == user_id)
        .where(Transaction.project_id == project_id)
        .where(Transaction.status == TransactionStatus.COMPLETED)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def submit_review(
    db: AsyncSession,
    project_id: uuid.UUID,
    user_id: uuid.UUID,
    rating: int,
    comment: str | None = None,
) -> ProjectReview:
    """
    Create the caller's review of a project, or replace it.

    Raises:
        NotFoundError: If the project doesn't exist.
        UnauthorizedAccessError: If the caller has no COMPLETED purchase
            from the project.
    """
    project = await project_service.get_project(db, project_id)

    if not await has_completed_purchase(db, user_id, project.id):
        raise UnauthorizedAccessError(
            "You must purchase credits from this project before reviewing"
        )

    result = await db.execute(
        select(ProjectReview)
        .where(ProjectReview.project_id == project.id)
        .where(ProjectReview.user_id == user_id)
    )
    review = result.scalar_one_or_none()
    if review is None:
        review = ProjectReview(project_id=project.id, user_id=user_id, rating=rating, comment=comment)
        db.add(review)
    else:
        review.rating = rating
        review.comment = comment

    await db.flush()
    await db.refresh(review)
    logger.info("Review of project %s by %s: %d/5", project.id, user_id, rating)
    return review


async def list_reviews(
    db: AsyncSession,
    project_id: uuid.UUID,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[ProjectReview], int, float]:
    """
    A project's reviews, newest first.

    Returns:
        Tuple of (reviews on this page, total reviews, average rating or 0).
    """
    await project_service.get_project(db, project_id)

    total, average = (
        await db.execute(
            select(func.count(ProjectReview.id), func.avg(ProjectReview.rating))
            .where(ProjectReview.project_id == project_id)
        )
    ).one()

    result = await db.execute(
        select(ProjectReview)
        .where(ProjectReview.project_id == project_id)
        .order_by(ProjectReview.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total, float(average or 0)

"""
ProjectReview model — a buyer's rating of a project.

Only members with a COMPLETED purchase from the project may review it, so
every review is tied to a payment that actually settled. A member holds at
most one review per project; submitting again replaces the rating and
comment (UNIQUE project_id + user_id).
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class ProjectReview(Base):
    __tablename__ = "project_reviews"

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_reviews_one_per_member"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_project_reviews_rating_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("carbon_projects.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)

    comment: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

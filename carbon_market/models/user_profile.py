"""
UserProfile model — the member's public identity and offset counter.

One-to-one with User (UNIQUE user_id). Besides display fields, the profile
carries `total_offset`: a denormalized running total of the member's
CARBON_OFFSET impact entries, in credits (tonnes CO2e).

Consistency of total_offset:
  The counter is only ever changed by impact_service.record_impact(), which
  inserts the UserImpact ledger row and increments the counter in the SAME
  database transaction, using `total_offset = total_offset + :value` so two
  concurrent increments cannot overwrite each other. The ledger remains the
  source of truth; impact_service.get_offset_summary() recomputes the sum
  and reports whether the two agree.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carbon_market.database import Base


class UserProfile(Base):
    __tablename__ = "user_profiles"

    __table_args__ = (
        CheckConstraint("total_offset >= 0", name="ck_user_profiles_non_negative_offset"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        unique=True,
        nullable=False,
    )

    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    bio: Mapped[str | None] = mapped_column(String(500), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Sum of CARBON_OFFSET impact values, in credits
    total_offset: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

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

    # --- Relationships ---
    user: Mapped["User"] = relationship(
        back_populates="profile",
    )

"""
UserImpact model — the append-only impact ledger.

Each row records one quantified climate action by a member: a credit
purchase (written by the settlement handler) or a manually reported action
(POST /impact). Rows are never updated or deleted; cumulative figures such
as UserProfile.total_offset are derived from them.

One entry per purchase:
  `transaction_id` is UNIQUE. Settling the same checkout twice would have to
  insert a second row with the same transaction_id, which the database
  rejects — a last line of defense behind the webhook idempotency ledger.
  Manual entries leave it NULL (NULLs never collide on a UNIQUE column).
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class ImpactType(str, enum.Enum):
    CARBON_OFFSET = "CARBON_OFFSET"
    EMISSION_REDUCTION = "EMISSION_REDUCTION"
    RENEWABLE_ENERGY = "RENEWABLE_ENERGY"
    REFORESTATION = "REFORESTATION"
    CONSERVATION = "CONSERVATION"
    EDUCATION = "EDUCATION"
    OTHER = "OTHER"


class UserImpact(Base):
    __tablename__ = "user_impacts"

    __table_args__ = (
        CheckConstraint("value > 0", name="ck_user_impacts_positive_value"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("carbon_projects.id"),
        nullable=True,
    )

    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transactions.id"),
        unique=True,
        nullable=True,
    )

    impact_type: Mapped[ImpactType] = mapped_column(
        Enum(ImpactType),
        nullable=False,
        index=True,
    )

    value: Mapped[int] = mapped_column(Integer, nullable=False)

    unit: Mapped[str] = mapped_column(String(50), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )

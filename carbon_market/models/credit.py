"""
CarbonCredit model — one tonne CO2e of verified reduction.

Credits are minted (one row per tonne) when a project is approved, and
move through a one-way lifecycle:

    AVAILABLE ──checkout──▶ RESERVED ──payment succeeded──▶ SOLD ──retire──▶ RETIRED
        │                      │
        │                      └──payment failed / canceled / hold expired──▶ AVAILABLE
        └──────────────── (AVAILABLE | RESERVED) ──project withdrawn──▶ CANCELLED

Ownership invariant:
  `owner_id` is NULL until the credit is SOLD, and a SOLD credit has
  exactly one owner. `transaction_id` points at the checkout that holds
  (RESERVED) or bought (SOLD / RETIRED) the credit; it is the only link a
  credit ever has to a purchase, so a credit can be sold at most once.

No oversell:
  Every status change is a conditional UPDATE of the form
      UPDATE carbon_credits SET status = :new ... WHERE id IN (...) AND status = :expected
  and the caller checks the affected-row count. Two concurrent checkouts
  can never both move the same AVAILABLE row to RESERVED: the second
  UPDATE finds the row no longer AVAILABLE and affects fewer rows than
  requested. See credit_service.reserve_credits().
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class CreditStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    SOLD = "SOLD"
    RETIRED = "RETIRED"
    CANCELLED = "CANCELLED"


class CarbonCredit(Base):
    __tablename__ = "carbon_credits"

    __table_args__ = (
        CheckConstraint("quantity = 1", name="ck_credits_unit_quantity"),
        CheckConstraint("price_cents > 0", name="ck_credits_positive_price"),
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

    # Registry serial, e.g. "3F2A9C1B-2026-000042"
    serial_number: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
    )

    vintage: Mapped[int] = mapped_column(Integer, nullable=False)

    # Always 1 tonne per row
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[CreditStatus] = mapped_column(
        Enum(CreditStatus),
        nullable=False,
        default=CreditStatus.AVAILABLE,
        index=True,
    )

    # NULL until SOLD
    owner_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"),
        nullable=True,
        index=True,
    )

    # The checkout holding (RESERVED) or having bought (SOLD/RETIRED) this credit
    transaction_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transactions.id"),
        nullable=True,
        index=True,
    )

    retired_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    retirement_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

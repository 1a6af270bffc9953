"""
Transaction model — one checkout of carbon credits.

A Transaction is created by the checkout initiator (POST /payments) in the
PENDING state, with the Stripe payment intent id attached, and is moved to
a terminal state only by the payment processor's webhook (or by the hold
expiry sweep):

    PENDING ──payment_intent.succeeded──────▶ COMPLETED
        │   ──payment_intent.payment_failed─▶ FAILED
        └   ──payment_intent.canceled───────▶ CANCELLED

All three end states are terminal. Transitions are conditional UPDATEs
(`... WHERE status = 'PENDING'`), so a redelivered webhook that arrives
after the first one finds nothing to update and becomes a no-op.

Key fields:
  - amount: number of credits (tonnes) bought — always positive
  - price_per_credit_cents: snapshot of the project price at checkout
  - total_amount_cents: amount × price_per_credit_cents, what Stripe charges
  - payment_intent_id: the processor's opaque reference (UNIQUE), used to
    find the transaction when the webhook arrives
  - expires_at: end of the inventory hold; after this an unpaid checkout
    may be cancelled and its credits returned to the pool
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey, Enum, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset(
    {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
)


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_positive_amount"),
        CheckConstraint(
            "total_amount_cents = amount * price_per_credit_cents",
            name="ck_transactions_total_matches",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # The buyer
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("carbon_projects.id"),
        nullable=False,
        index=True,
    )

    # Number of credits purchased
    amount: Mapped[int] = mapped_column(Integer, nullable=False)

    price_per_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus),
        nullable=False,
        default=TransactionStatus.PENDING,
        index=True,
    )

    # NULL only between the row insert and the payment intent creation,
    # both of which happen inside the same database transaction
    payment_intent_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
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

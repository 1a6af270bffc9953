"""
CarbonProject and ProjectVerification models.

A CarbonProject is an emissions-reduction activity submitted by a member.
It starts PENDING and is reviewed by an administrator:

    PENDING ──verify(APPROVED)──────────▶ VERIFIED   (credits minted)
        │  ──verify(REJECTED)───────────▶ REJECTED
        └  ──verify(REQUIRES_REVISION)──▶ UNDER_REVIEW

Every review is recorded as a ProjectVerification row, so the project's
status is the latest decision and the verification table is the history.

Pricing:
  `price_per_credit_cents` is the unit price used both when minting
  credits and when computing a checkout total. Integer cents, never float.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    String, Text, Boolean, Integer, DateTime, ForeignKey, Enum, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from carbon_market.database import Base


class ProjectType(str, enum.Enum):
    REFORESTATION = "REFORESTATION"
    RENEWABLE_ENERGY = "RENEWABLE_ENERGY"
    ENERGY_EFFICIENCY = "ENERGY_EFFICIENCY"
    WASTE_MANAGEMENT = "WASTE_MANAGEMENT"
    CARBON_CAPTURE = "CARBON_CAPTURE"
    BLUE_CARBON = "BLUE_CARBON"
    AGRICULTURE = "AGRICULTURE"
    OTHER = "OTHER"


class CarbonStandard(str, enum.Enum):
    VCS = "VCS"
    GOLD_STANDARD = "GOLD_STANDARD"
    CARBON_CREDIT_STANDARD = "CARBON_CREDIT_STANDARD"
    ISO_14064 = "ISO_14064"
    OTHER = "OTHER"


class ProjectStatus(str, enum.Enum):
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class VerificationDecision(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REQUIRES_REVISION = "REQUIRES_REVISION"


class CarbonProject(Base):
    __tablename__ = "carbon_projects"

    __table_args__ = (
        CheckConstraint("estimated_credits > 0", name="ck_projects_positive_estimate"),
        CheckConstraint("price_per_credit_cents > 0", name="ck_projects_positive_price"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    project_type: Mapped[ProjectType] = mapped_column(
        Enum(ProjectType),
        nullable=False,
        index=True,
    )
    standard: Mapped[CarbonStandard] = mapped_column(
        Enum(CarbonStandard),
        nullable=False,
    )
    methodology: Mapped[str] = mapped_column(String(255), nullable=False)

    # Number of one-tonne credits minted when the project is approved
    estimated_credits: Mapped[int] = mapped_column(Integer, nullable=False)

    price_per_credit_cents: Mapped[int] = mapped_column(Integer, nullable=False)

    # ISO 4217 currency code
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
    )

    status: Mapped[ProjectStatus] = mapped_column(
        Enum(ProjectStatus),
        nullable=False,
        default=ProjectStatus.PENDING,
        index=True,
    )

    verification_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Set once credits have been minted; guards against minting twice
    credits_minted: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
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

    # --- Relationships ---
    verifications: Mapped[list["ProjectVerification"]] = relationship(
        back_populates="project",
        order_by="ProjectVerification.created_at.desc()",
    )


class ProjectVerification(Base):
    __tablename__ = "project_verifications"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("carbon_projects.id"),
        nullable=False,
        index=True,
    )

    # The admin who made the decision
    verifier_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
    )

    decision: Mapped[VerificationDecision] = mapped_column(
        Enum(VerificationDecision),
        nullable=False,
    )

    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Only set for APPROVED decisions
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # --- Relationships ---
    project: Mapped["CarbonProject"] = relationship(
        back_populates="verifications",
    )

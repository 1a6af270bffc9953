"""
RetirementCertificate model — proof that a credit was permanently retired.

Issued when the owner of a SOLD credit retires it. The project title,
serial number and vintage are snapshotted so the certificate stays
meaningful even if the project record is later edited.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class RetirementCertificate(Base):
    __tablename__ = "retirement_certificates"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    credit_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("carbon_credits.id"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("carbon_projects.id"),
        nullable=False,
    )

    # "RC-<yyyymmddHHMMSS>-<last 6 chars of credit id>"
    certificate_number: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
    )

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    vintage: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    project_title: Mapped[str] = mapped_column(String(200), nullable=False)

    retired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

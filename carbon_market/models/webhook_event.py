"""
ProcessedWebhookEvent model — the webhook idempotency ledger.

Stripe delivers webhooks at least once: the same event (same `evt_...` id)
may arrive several times. Before applying any side effect the settlement
handler inserts the event id here; the UNIQUE constraint makes that insert
the check-and-set. The row is written in the same database transaction as
the side effects, so:

  - success: ledger row and side effects commit together; a redelivery hits
    the UNIQUE constraint and is acknowledged without reprocessing
  - failure: both roll back; the processor retries and the redelivery is
    processed from scratch
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from carbon_market.database import Base


class ProcessedWebhookEvent(Base):
    __tablename__ = "processed_webhook_events"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # The processor's event id, e.g. "evt_1NG8Du2eZvKYlo2CUI79vXWy"
    event_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )

    event_type: Mapped[str] = mapped_column(String(100), nullable=False)

    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

"""
Pydantic schemas for checkout and payment history endpoints.

All monetary amounts are in integer cents (e.g., $10.50 = 1050). `amount`
is always a number of credits, never money.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from carbon_market.models.transaction import TransactionStatus
from carbon_market.schemas.common import Pagination


class CheckoutRequest(BaseModel):
    """Request body for POST /payments."""
    project_id: uuid.UUID
    amount: int = Field(gt=0, le=100_000, description="Number of credits to buy")
    currency: str = Field("USD", min_length=3, max_length=3)
    payment_method: str | None = Field(None, max_length=50)

    @field_validator("currency")
    @classmethod
    def currency_upper(cls, value: str) -> str:
        """ISO 4217 codes are compared upper-case."""
        return value.upper()


class CheckoutResponse(BaseModel):
    """Response body for a started checkout.

    The browser completes payment with `client_secret`; the credits are
    transferred only once the processor confirms it via webhook.
    """
    transaction_id: uuid.UUID
    client_secret: str
    amount: int
    total_amount_cents: int
    currency: str
    expires_at: datetime


class TransactionResponse(BaseModel):
    """Public representation of a purchase."""
    id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID
    amount: int
    price_per_credit_cents: int
    total_amount_cents: int
    currency: str
    status: TransactionStatus
    payment_intent_id: str | None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TransactionListResponse(BaseModel):
    transactions: list[TransactionResponse]
    pagination: Pagination


class ExpireCheckoutsResponse(BaseModel):
    """Result of one hold-expiry sweep."""
    expired: list[uuid.UUID]
    skipped: list[uuid.UUID]
    credits_released: int


class WebhookAck(BaseModel):
    received: bool
    duplicate: bool = False

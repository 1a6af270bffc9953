"""Pydantic schemas for carbon credit and retirement endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from carbon_market.models.credit import CreditStatus
from carbon_market.schemas.common import Pagination


class CreditResponse(BaseModel):
    """Public representation of a single credit (one tonne of CO2e)."""
    id: uuid.UUID
    project_id: uuid.UUID
    serial_number: str
    vintage: int
    quantity: int
    price_cents: int
    status: CreditStatus
    owner_id: uuid.UUID | None
    retired_at: datetime | None
    retirement_reason: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class CreditListResponse(BaseModel):
    credits: list[CreditResponse]
    pagination: Pagination


class RetireCreditRequest(BaseModel):
    """Request body for POST /credits/{id}/retire."""
    reason: str = Field(min_length=10, max_length=500)


class CertificateResponse(BaseModel):
    """A retirement certificate, issued once per retired credit."""
    id: uuid.UUID
    credit_id: uuid.UUID
    user_id: uuid.UUID
    project_id: uuid.UUID
    certificate_number: str
    serial_number: str
    vintage: int
    quantity: int
    reason: str
    project_title: str
    retired_at: datetime

    model_config = {"from_attributes": True}


class RetireCreditResponse(BaseModel):
    credit: CreditResponse
    certificate: CertificateResponse


class RetirementHistoryResponse(BaseModel):
    credit: CreditResponse
    certificates: list[CertificateResponse]

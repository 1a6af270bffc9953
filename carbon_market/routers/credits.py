"""
Credits router — the marketplace inventory and credit retirement.

Endpoints:
  GET  /credits                    — Browse credits (public, AVAILABLE by default)
  GET  /credits/mine               — Credits owned by the caller
  POST /credits/{id}/retire        — Retire an owned credit and get a certificate
  GET  /credits/{id}/retirements   — Certificates for an owned credit

/credits/mine is declared before the parameterized routes so "mine" is
never parsed as a credit id.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import get_current_member
from carbon_market.models.credit import CreditStatus
from carbon_market.models.user import User
from carbon_market.schemas.common import Pagination
from carbon_market.schemas.credit import (
    CertificateResponse,
    CreditListResponse,
    CreditResponse,
    RetireCreditRequest,
    RetireCreditResponse,
    RetirementHistoryResponse,
)
from carbon_market.services import credit_service

router = APIRouter()


@router.get("", response_model=CreditListResponse, summary="Browse credits")
async def list_credits(
    project_id: uuid.UUID | None = Query(None),
    status_filter: CreditStatus = Query(CreditStatus.AVAILABLE, alias="status"),
    vintage: int | None = Query(None, ge=1990, le=2100),
    min_price_cents: int | None = Query(None, ge=0),
    max_price_cents: int | None = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    credits, total = await credit_service.list_credits(
        db,
        project_id=project_id,
        status_filter=status_filter,
        vintage=vintage,
        min_price_cents=min_price_cents,
        max_price_cents=max_price_cents,
        page=page,
        limit=limit,
    )
    return CreditListResponse(
        credits=[CreditResponse.model_validate(c) for c in credits],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/mine", response_model=list[CreditResponse], summary="My credits")
async def list_my_credits(
    status_filter: CreditStatus | None = Query(None, alias="status"),
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """Credits the caller bought, sold and retired alike unless filtered."""
    return await credit_service.list_owned_credits(db, user.id, status_filter)


@router.post(
    "/{credit_id}/retire",
    response_model=RetireCreditResponse,
    summary="Retire a credit",
)
async def retire_credit(
    credit_id: uuid.UUID,
    request: RetireCreditRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    """
    Permanently retire one credit the caller owns.

    Retirement is final: the credit can never be resold. A certificate
    recording the serial number, vintage and reason is issued.
    """
    credit, certificate = await credit_service.retire_credit(
        db, credit_id=credit_id, owner_id=user.id, reason=request.reason
    )
    return RetireCreditResponse(
        credit=CreditResponse.model_validate(credit),
        certificate=CertificateResponse.model_validate(certificate),
    )


@router.get(
    "/{credit_id}/retirements",
    response_model=RetirementHistoryResponse,
    summary="Retirement certificates for a credit",
)
async def get_retirement_history(
    credit_id: uuid.UUID,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    credit, certificates = await credit_service.get_retirement_history(db, credit_id, user.id)
    return RetirementHistoryResponse(
        credit=CreditResponse.model_validate(credit),
        certificates=[CertificateResponse.model_validate(c) for c in certificates],
    )

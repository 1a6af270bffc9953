"""
Admin router — marketplace oversight.

All endpoints require ADMIN role.

Endpoints:
  GET  /admin/transactions                   — List ALL purchases
  GET  /admin/transactions/{transaction_id}  — Get any purchase by ID
  POST /admin/checkouts/expire               — Cancel checkouts whose hold lapsed

Project verification is an admin action too but lives with the other
project routes (POST /projects/{id}/verify).
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import require_admin
from carbon_market.models.transaction import TransactionStatus
from carbon_market.models.user import User
from carbon_market.schemas.transaction import ExpireCheckoutsResponse, TransactionResponse
from carbon_market.services import transaction_service
from carbon_market.services.payment_gateway import StripeGateway, get_payment_gateway

router = APIRouter()


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="[Admin] List all transactions",
)
async def admin_list_all_transactions(
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Every purchase in the marketplace, newest first."""
    return await transaction_service.admin_get_all_transactions(
        db, status_filter=status_filter, limit=limit, offset=offset
    )


@router.get(
    "/transactions/{transaction_id}",
    response_model=TransactionResponse,
    summary="[Admin] Get any transaction",
)
async def admin_get_transaction(
    transaction_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.admin_get_transaction(db, transaction_id)


@router.post(
    "/checkouts/expire",
    response_model=ExpireCheckoutsResponse,
    summary="[Admin] Expire stale checkouts",
)
async def admin_expire_checkouts(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """
    Cancel every PENDING checkout past its hold and release its credits.

    Checkouts whose payment Stripe refuses to cancel (it already
    succeeded) are reported as skipped and left for the webhook.
    """
    return await transaction_service.expire_stale_checkouts(db, gateway)

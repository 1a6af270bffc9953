"""
Payments router — checkout and purchase history.

Endpoints:
  POST /payments        — Start a checkout (reserve credits, create PaymentIntent)
  GET  /payments        — The caller's purchases
  GET  /payments/{id}   — One of the caller's purchases

Starting a checkout never transfers credits. They move to the buyer only
when Stripe confirms the payment through POST /webhooks/stripe.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.dependencies import get_current_member
from carbon_market.models.transaction import TransactionStatus
from carbon_market.models.user import User
from carbon_market.schemas.common import Pagination
from carbon_market.schemas.transaction import (
    CheckoutRequest,
    CheckoutResponse,
    TransactionListResponse,
    TransactionResponse,
)
from carbon_market.services import transaction_service
from carbon_market.services.payment_gateway import StripeGateway, get_payment_gateway

router = APIRouter()


@router.post(
    "",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start a checkout",
)
async def create_checkout(
    request: CheckoutRequest,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    """
    Buy `amount` credits from a project.

    The credits are held for CHECKOUT_HOLD_MINUTES while the buyer pays
    with the returned `client_secret`. Fails with 400 if the project has
    fewer AVAILABLE credits than requested; nothing is recorded then.
    The checkout is committed before the response is built; if that fails
    the PaymentIntent is cancelled and the response is 500.
    """
    txn, client_secret = await transaction_service.initiate_checkout(
        db,
        gateway,
        user_id=user.id,
        project_id=request.project_id,
        amount=request.amount,
        currency=request.currency,
        payment_method=request.payment_method,
    )
    await transaction_service.commit_checkout(db, gateway, txn)
    return CheckoutResponse(
        transaction_id=txn.id,
        client_secret=client_secret,
        amount=txn.amount,
        total_amount_cents=txn.total_amount_cents,
        currency=txn.currency,
        expires_at=txn.expires_at,
    )


@router.get("", response_model=TransactionListResponse, summary="My purchases")
async def list_payments(
    status_filter: TransactionStatus | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    transactions, total = await transaction_service.get_transactions(
        db, user.id, status_filter=status_filter, page=page, limit=limit
    )
    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{transaction_id}", response_model=TransactionResponse, summary="Get a purchase")
async def get_payment(
    transaction_id: uuid.UUID,
    user: User = Depends(get_current_member),
    db: AsyncSession = Depends(get_db),
):
    return await transaction_service.get_transaction(db, transaction_id, user.id)

"""
Webhooks router — Stripe event delivery.

Endpoint:
  POST /webhooks/stripe — Signed event from Stripe (no user authentication)

The raw request body is handed to the settlement service untouched: the
signature covers the exact bytes Stripe sent, so the body must not be
parsed and re-serialized before verification.

Response codes drive Stripe's retry behavior:
  200 — event applied, or a duplicate already applied; Stripe stops
  400 — signature invalid; nothing was read or written
  500 — applying the event failed and was rolled back; Stripe redelivers

The route commits the session itself before returning. get_db's own commit
runs only after the response has gone out, too late to turn a failed
commit into a 500.
"""

import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.database import get_db
from carbon_market.exceptions import CarbonMarketError, InternalError, InvalidSignatureError
from carbon_market.schemas.transaction import WebhookAck
from carbon_market.services import settlement_service
from carbon_market.services.payment_gateway import StripeGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe", response_model=WebhookAck, summary="Stripe webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
):
    payload = await request.body()
    try:
        ack = await settlement_service.handle_webhook(db, gateway, payload, stripe_signature)
        # Commit before answering; a 2xx tells Stripe never to redeliver
        await db.commit()
        return ack
    except (InvalidSignatureError, InternalError):
        raise
    except CarbonMarketError as exc:
        logger.error("Webhook processing failed: %s", exc.detail)
        raise InternalError(exc.detail) from exc
    except Exception as exc:
        logger.exception("Webhook processing failed")
        raise InternalError("Webhook processing failed") from exc

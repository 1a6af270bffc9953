"""
Settlement service — applies Stripe webhook events to the marketplace.

Flow for one webhook delivery:

  1. Verify the signature (payment_gateway.verify_webhook). Nothing touches
     the database until this passes.
  2. Claim the event id in the idempotency ledger (ProcessedWebhookEvent).
     If it is already there, this is a redelivery: acknowledge and stop.
  3. Dispatch on the event type:
       payment_intent.succeeded       -> settle_payment()
       payment_intent.payment_failed  -> transaction FAILED, credits released
       payment_intent.canceled        -> transaction CANCELLED, credits released
       anything else                  -> logged and ignored
     A payment event without a PaymentIntent id is logged and acknowledged
     unapplied; redelivering it would never succeed.
  4. Return normally. The route commits the ledger row and every side
     effect together.

Failure policy:
  Any exception after step 1 propagates. The request's database transaction
  rolls back (ledger row included) and the route answers 500, so Stripe
  redelivers the event and it is processed again from scratch. A webhook is
  never acknowledged with a 2xx unless its effects are committed.

Idempotency, two layers:
  - per event: the ledger's UNIQUE event_id. A redelivery finds the row and
    is acknowledged; two deliveries racing past the lookup collide on the
    UNIQUE index and the loser answers 500, so Stripe retries it into the
    acknowledged path.
  - per transaction: settle_payment() starts with the conditional
    PENDING -> COMPLETED transition. A second, distinct "succeeded" event
    for the same PaymentIntent finds the transaction COMPLETED, affects no
    rows, and adds no impact entry or offset. UserImpact.transaction_id is
    UNIQUE as a final guard.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import InternalError
from carbon_market.models.impact import ImpactType
from carbon_market.models.project import CarbonProject
from carbon_market.models.transaction import Transaction, TransactionStatus
from carbon_market.models.webhook_event import ProcessedWebhookEvent
from carbon_market.services import credit_service, impact_service, transaction_service
from carbon_market.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_CANCELED = "payment_intent.canceled"


async def handle_webhook(
    db: AsyncSession,
    gateway: StripeGateway,
    payload: bytes,
    signature_header: str | None,
) -> dict:
    """
    Verify and apply one webhook delivery.

    Returns:
        {"received": True} plus "duplicate": True for a redelivered event.

    Raises:
        InvalidSignatureError: If verification fails (no database access).
        Exception: Anything raised while applying the event; the caller
            must roll back and answer with a non-2xx status.
    """
    event = gateway.verify_webhook(payload, signature_header)
    event_id = event["id"]
    event_type = event["type"]
    logger.info("Webhook %s received: %s", event_id, event_type)

    if not await _claim_event(db, event_id, event_type):
        logger.info("Webhook %s already processed; acknowledging duplicate", event_id)
        return {"received": True, "duplicate": True}

    if event_type not in (PAYMENT_SUCCEEDED, PAYMENT_FAILED, PAYMENT_CANCELED):
        logger.info("Unhandled webhook event type: %s", event_type)
        return {"received": True}

    data = event.get("data")
    data_object = data.get("object") if isinstance(data, dict) else None
    payment_intent_id = data_object.get("id") if isinstance(data_object, dict) else None
    if not isinstance(payment_intent_id, str) or not payment_intent_id:
        # Redelivery cannot fix a malformed event, so it is acknowledged
        logger.warning("Webhook %s (%s) names no payment intent; not applied", event_id, event_type)
        return {"received": True}

    if event_type == PAYMENT_SUCCEEDED:
        await settle_payment(db, payment_intent_id)
    elif event_type == PAYMENT_FAILED:
        await close_payment(db, payment_intent_id, TransactionStatus.FAILED)
    else:
        await close_payment(db, payment_intent_id, TransactionStatus.CANCELLED)

    return {"received": True}


async def _claim_event(db: AsyncSession, event_id: str, event_type: str) -> bool:
    """
    Record an event id in the idempotency ledger.

    Returns:
        True if this delivery claimed the event, False if it was already
        recorded.
    """
    existing = await db.execute(
        select(ProcessedWebhookEvent.id).where(ProcessedWebhookEvent.event_id == event_id)
    )
    if existing.scalar_one_or_none() is not None:
        return False

    # A concurrent delivery that committed first makes this flush raise
    # IntegrityError; the route answers 500 and the retry takes the branch above
    db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
    await db.flush()
    return True


async def settle_payment(db: AsyncSession, payment_intent_id: str) -> Transaction | None:
    """
    Finalize a successful payment.

    Marks the transaction COMPLETED, transfers `amount` credits to the
    buyer, appends a CARBON_OFFSET impact entry and increments the buyer's
    total_offset — all in the caller's database transaction.

    Returns:
        The settled transaction, or None if there was nothing to settle
        (unknown PaymentIntent, or transaction no longer PENDING).

    Raises:
        InternalError: If `amount` credits cannot be transferred. The whole
            settlement rolls back and the processor will retry.
    """
    txn = await transaction_service.get_by_payment_intent(db, payment_intent_id)
    if txn is None:
        logger.warning("No transaction for payment intent %s; ignoring", payment_intent_id)
        return None

    if not await transaction_service.transition_status(db, txn.id, TransactionStatus.COMPLETED):
        if txn.status == TransactionStatus.COMPLETED:
            logger.info("Transaction %s already settled", txn.id)
        else:
            # The payment went through for a checkout we had already closed
            logger.error(
                "Payment %s succeeded for transaction %s in status %s; needs manual refund",
                payment_intent_id, txn.id, txn.status.value,
            )
        return None

    sold = await credit_service.sell_credits(db, transaction_id=txn.id, buyer_id=txn.user_id)
    if sold != txn.amount:
        raise InternalError(
            f"Transaction {txn.id}: transferred {sold} of {txn.amount} credits"
        )

    project_title = await _project_title(db, txn.project_id)
    await impact_service.record_impact(
        db,
        user_id=txn.user_id,
        impact_type=ImpactType.CARBON_OFFSET,
        value=txn.amount,
        unit="credits",
        description=f"Carbon offset purchase from {project_title}",
        project_id=txn.project_id,
        transaction_id=txn.id,
        verified=True,
    )

    txn.status = TransactionStatus.COMPLETED
    logger.info("Transaction %s settled: %d credits to %s", txn.id, sold, txn.user_id)
    return txn


async def close_payment(
    db: AsyncSession,
    payment_intent_id: str,
    new_status: TransactionStatus,
) -> Transaction | None:
    """
    Mark a checkout FAILED or CANCELLED and return its credits to the pool.

    Returns:
        The closed transaction, or None if unknown or already terminal.
    """
    txn = await transaction_service.get_by_payment_intent(db, payment_intent_id)
    if txn is None:
        logger.warning("No transaction for payment intent %s; ignoring", payment_intent_id)
        return None

    if not await transaction_service.transition_status(db, txn.id, new_status):
        logger.info("Transaction %s already %s; ignoring %s", txn.id, txn.status.value, new_status.value)
        return None

    released = await credit_service.release_credits(db, txn.id)
    txn.status = new_status
    logger.info("Transaction %s %s; %d credits released", txn.id, new_status.value, released)
    return txn


async def _project_title(db: AsyncSession, project_id: uuid.UUID) -> str:
    result = await db.execute(
        select(CarbonProject.title).where(CarbonProject.id == project_id)
    )
    return result.scalar_one_or_none() or "unknown project"

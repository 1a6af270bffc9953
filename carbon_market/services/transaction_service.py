"""
Transaction service — checkout initiation and the Transaction lifecycle.

THIS MODULE AND settlement_service.py ARE THE CORE OF THE MARKETPLACE. This
one handles:
  - Checkout: validate, hold inventory, create the payment intent, record
    the PENDING transaction
  - Status transitions: PENDING -> COMPLETED | FAILED | CANCELLED
  - Hold expiry: cancelling abandoned checkouts and freeing their credits
  - Read access for buyers and administrators

Checkout atomicity:
  initiate_checkout() runs inside the request's single database
  transaction. The Transaction row is inserted first (so its id can tag
  the reserved credits), then the credits are reserved with one conditional
  UPDATE, then Stripe is called. If the reservation comes up short or Stripe
  fails, the exception propagates, get_db() rolls back, and neither the
  Transaction row nor any reservation survives.

  The one thing a rollback cannot undo is the PaymentIntent itself. The
  route therefore commits through commit_checkout() before it hands out the
  client_secret. If that commit fails, the intent is cancelled at Stripe and
  the buyer gets a 500, so nobody can pay for a checkout that was never
  recorded.

Inventory holds:
  Credits stay RESERVED until the transaction's expires_at.
  expire_stale_checkouts() cancels the payment intent of every PENDING
  transaction past its hold and, only if the processor confirms the
  cancellation, marks it CANCELLED and releases the credits. A payment that
  already went through therefore always keeps its credits.

Terminal states:
  Every transition is `UPDATE ... WHERE status = 'PENDING'`. Once a
  transaction leaves PENDING, later transitions affect zero rows and the
  caller treats the event as already handled.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.config import settings
from carbon_market.exceptions import (
    InternalError,
    NotFoundError,
    UnauthorizedAccessError,
    UpstreamPaymentError,
    ValidationError,
)
from carbon_market.models.project import ProjectStatus
from carbon_market.models.transaction import Transaction, TransactionStatus
from carbon_market.services import credit_service, project_service
from carbon_market.services.payment_gateway import StripeGateway

logger = logging.getLogger(__name__)


async def initiate_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    user_id: uuid.UUID,
    project_id: uuid.UUID | None,
    amount: int,
    currency: str | None = None,
    payment_method: str | None = None,
) -> tuple[Transaction, str]:
    """
    Start a purchase of `amount` credits from a project.

    Steps (all in one database transaction):
      1. Validate the request and load the project
      2. Insert a PENDING Transaction priced at the project's current price
      3. Atomically reserve `amount` AVAILABLE credits for it
      4. Create the Stripe PaymentIntent for the total
      5. Attach the PaymentIntent id to the Transaction

    Args:
        db: Database session.
        gateway: Payment gateway used to create the PaymentIntent.
        user_id: The buyer.
        project_id: The project to buy from.
        amount: Number of credits (tonnes) to buy.
        currency: ISO 4217 code; defaults to DEFAULT_CURRENCY.
        payment_method: Optional payment method type (e.g. "card").

    Returns:
        Tuple of (transaction, client_secret for the browser).

    Raises:
        ValidationError: Missing project id, non-positive amount, a project
            that is not VERIFIED, or a currency the project is not priced in.
        NotFoundError: If the project doesn't exist.
        InsufficientInventoryError: If fewer than `amount` credits are AVAILABLE.
        UpstreamPaymentError: If the payment processor call fails.
    """
    if project_id is None:
        raise ValidationError("Project ID is required")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("Amount must be a positive whole number of credits")

    currency = (currency or settings.DEFAULT_CURRENCY).upper()

    project = await project_service.get_project(db, project_id)
    if project.status != ProjectStatus.VERIFIED:
        raise ValidationError(f"Project {project.id} is not open for sale")
    if currency != project.currency:
        raise ValidationError(
            f"Project {project.id} is priced in {project.currency}, not {currency}"
        )

    now = datetime.now(timezone.utc)
    txn = Transaction(
        user_id=user_id,
        project_id=project.id,
        amount=amount,
        price_per_credit_cents=project.price_per_credit_cents,
        total_amount_cents=amount * project.price_per_credit_cents,
        currency=currency,
        status=TransactionStatus.PENDING,
        expires_at=now + timedelta(minutes=settings.CHECKOUT_HOLD_MINUTES),
    )
    db.add(txn)
    await db.flush()

    await credit_service.reserve_credits(
        db,
        project_id=project.id,
        transaction_id=txn.id,
        quantity=amount,
    )

    intent = await gateway.create_payment_intent(
        amount_cents=txn.total_amount_cents,
        currency=currency,
        metadata={
            "transaction_id": str(txn.id),
            "user_id": str(user_id),
            "project_id": str(project.id),
            "amount": str(amount),
            "price_per_credit_cents": str(project.price_per_credit_cents),
        },
        payment_method=payment_method,
    )

    txn.payment_intent_id = intent.id
    await db.flush()

    logger.info(
        "Checkout %s: %d credits of project %s for %d %s (intent %s)",
        txn.id, amount, project.id, txn.total_amount_cents, currency, intent.id,
    )
    return txn, intent.client_secret


async def commit_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    txn: Transaction,
) -> None:
    """
    Commit a new checkout before its client_secret leaves the server.

    Raises:
        InternalError: If the commit fails. The PaymentIntent is cancelled
            first so the buyer cannot pay for an unrecorded checkout.
    """
    transaction_id = txn.id
    payment_intent_id = txn.payment_intent_id
    try:
        await db.commit()
    except Exception as exc:
        logger.exception("Checkout %s could not be committed", transaction_id)
        try:
            await gateway.cancel_payment_intent(payment_intent_id)
        except UpstreamPaymentError:
            logger.error(
                "Payment intent %s for unrecorded checkout %s could not be cancelled",
                payment_intent_id, transaction_id,
            )
        raise InternalError("Checkout could not be recorded") from exc


async def get_by_payment_intent(
    db: AsyncSession,
    payment_intent_id: str,
) -> Transaction | None:
    """Find the transaction for a Stripe PaymentIntent id, if any."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.payment_intent_id == payment_intent_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def transition_status(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    new_status: TransactionStatus,
) -> bool:
    """
    Move a PENDING transaction to a terminal status.

    Returns:
        True if this call performed the transition, False if the transaction
        had already left PENDING (the caller must not repeat side effects).
    """
    result = await db.execute(
        update(Transaction)
        .where(Transaction.id == transaction_id)
        .where(Transaction.status == TransactionStatus.PENDING)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def expire_stale_checkouts(
    db: AsyncSession,
    gateway: StripeGateway,
    now: datetime | None = None,
) -> dict:
    """
    Cancel PENDING checkouts whose inventory hold has lapsed.

    For each stale transaction the PaymentIntent is cancelled at Stripe
    first. If Stripe refuses (the payment already succeeded) the
    transaction is left PENDING for the webhook to settle.

    Returns:
        Dict with the ids of expired and skipped transactions and the number
        of credits released.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.status == TransactionStatus.PENDING)
        .where(Transaction.expires_at < now)
        .order_by(Transaction.expires_at)
    )
    stale = list(result.scalars().all())

    expired: list[uuid.UUID] = []
    skipped: list[uuid.UUID] = []
    released = 0

    for txn in stale:
        if txn.payment_intent_id:
            cancelled = await gateway.cancel_payment_intent(txn.payment_intent_id)
            if not cancelled:
                skipped.append(txn.id)
                continue

        if await transition_status(db, txn.id, TransactionStatus.CANCELLED):
            released += await credit_service.release_credits(db, txn.id)
            expired.append(txn.id)

    if stale:
        logger.info(
            "Hold expiry: %d expired, %d left for settlement, %d credits released",
            len(expired), len(skipped), released,
        )
    return {"expired": expired, "skipped": skipped, "credits_released": released}


async def get_transactions(
    db: AsyncSession,
    user_id: uuid.UUID,
    status_filter: TransactionStatus | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Transaction], int]:
    """
    List a buyer's transactions, newest first.

    Returns:
        Tuple of (transactions on this page, total matching transactions).
    """
    conditions = [Transaction.user_id == user_id]
    if status_filter is not None:
        conditions.append(Transaction.status == status_filter)

    total = (
        await db.execute(select(func.count(Transaction.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def get_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Transaction:
    """
    Get a single transaction, verifying the caller is the buyer.

    Raises:
        NotFoundError: If the transaction doesn't exist.
        UnauthorizedAccessError: If it belongs to another buyer.
    """
    txn = await admin_get_transaction(db, transaction_id)
    if txn.user_id != user_id:
        raise UnauthorizedAccessError("You do not have access to this transaction")
    return txn


# ---------------------------------------------------------------------------
# Admin read-only functions
# ---------------------------------------------------------------------------

async def admin_get_all_transactions(
    db: AsyncSession,
    status_filter: TransactionStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """[ADMIN ONLY] List ALL transactions across the marketplace."""
    query = (
        select(Transaction)
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    if status_filter is not None:
        query = query.where(Transaction.status == status_filter)

    result = await db.execute(query)
    return list(result.scalars().all())


async def admin_get_transaction(
    db: AsyncSession,
    transaction_id: uuid.UUID,
) -> Transaction:
    """
    [ADMIN ONLY] Get any single transaction by ID without ownership check.

    Raises:
        NotFoundError: If the transaction doesn't exist.
    """
    result = await db.execute(
        select(Transaction)
        .where(Transaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    txn = result.scalar_one_or_none()
    if txn is None:
        raise NotFoundError("Transaction", transaction_id)
    return txn

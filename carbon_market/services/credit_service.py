"""
Credit service — the carbon credit inventory.

This module owns every status change of a CarbonCredit:

  - mint_credits         (new rows, AVAILABLE)         — project approval
  - reserve_credits      AVAILABLE -> RESERVED         — checkout
  - release_credits      RESERVED  -> AVAILABLE        — failed/cancelled/expired checkout
  - sell_credits         RESERVED  -> SOLD             — settlement
  - retire_credit        SOLD      -> RETIRED          — owner retirement

Atomicity:
  Each transition is ONE conditional UPDATE whose WHERE clause repeats the
  expected current status, and the caller inspects the affected-row count.
  There is never a "SELECT the available rows, then UPDATE them later"
  window in which a concurrent request could claim the same rows. On
  PostgreSQL a concurrent UPDATE that loses the race re-evaluates the
  WHERE clause after the winner commits and skips the row; on SQLite write
  transactions are serialized outright.

  The affected-row count is the truth about what happened. If a checkout
  asks for 5 credits and the UPDATE touches 3, the checkout fails and the
  request's database transaction is rolled back, releasing those 3.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from carbon_market.exceptions import InsufficientInventoryError, NotFoundError
from carbon_market.models.credit import CarbonCredit, CreditStatus
from carbon_market.models.project import CarbonProject
from carbon_market.models.retirement import RetirementCertificate

logger = logging.getLogger(__name__)


def _serial_number(project: CarbonProject, vintage: int, seq: int) -> str:
    """Registry-style serial: <project prefix>-<vintage>-<6-digit sequence>."""
    return f"{project.id.hex[:8].upper()}-{vintage}-{seq:06d}"


async def mint_credits(
    db: AsyncSession,
    project: CarbonProject,
    vintage: int | None = None,
) -> int:
    """
    Create one AVAILABLE credit per estimated tonne of an approved project.

    Returns:
        The number of credits created.
    """
    vintage = vintage or datetime.now(timezone.utc).year
    credits = [
        CarbonCredit(
            project_id=project.id,
            serial_number=_serial_number(project, vintage, seq),
            vintage=vintage,
            quantity=1,
            price_cents=project.price_per_credit_cents,
            status=CreditStatus.AVAILABLE,
        )
        for seq in range(1, project.estimated_credits + 1)
    ]
    db.add_all(credits)
    await db.flush()
    logger.info("Minted %d credits for project %s", len(credits), project.id)
    return len(credits)


async def count_available(db: AsyncSession, project_id: uuid.UUID) -> int:
    """Number of AVAILABLE credits in a project's pool."""
    result = await db.execute(
        select(func.count(CarbonCredit.id))
        .where(CarbonCredit.project_id == project_id)
        .where(CarbonCredit.status == CreditStatus.AVAILABLE)
    )
    return result.scalar_one()


async def reserve_credits(
    db: AsyncSession,
    project_id: uuid.UUID,
    transaction_id: uuid.UUID,
    quantity: int,
) -> int:
    """
    Atomically move `quantity` AVAILABLE credits of a project to RESERVED.

    The candidate rows (lowest serial numbers first) are chosen by a
    subquery inside the same UPDATE, and the outer WHERE re-checks
    status = AVAILABLE, so the check and the claim cannot be separated.

    Returns:
        The number of credits reserved (always == quantity).

    Raises:
        InsufficientInventoryError: If fewer than `quantity` credits could be
            claimed. The caller's transaction must be rolled back.
    """
    candidates = (
        select(CarbonCredit.id)
        .where(CarbonCredit.project_id == project_id)
        .where(CarbonCredit.status == CreditStatus.AVAILABLE)
        .order_by(CarbonCredit.serial_number)
        .limit(quantity)
    )
    result = await db.execute(
        update(CarbonCredit)
        .where(CarbonCredit.id.in_(candidates))
        .where(CarbonCredit.status == CreditStatus.AVAILABLE)
        .values(
            status=CreditStatus.RESERVED,
            transaction_id=transaction_id,
        )
        .execution_options(synchronize_session=False)
    )
    reserved = result.rowcount

    if reserved < quantity:
        logger.info(
            "Checkout %s for project %s wanted %d credits, only %d available",
            transaction_id, project_id, quantity, reserved,
        )
        raise InsufficientInventoryError(
            project_id=project_id,
            requested=quantity,
            available=reserved,
        )
    return reserved


async def release_credits(db: AsyncSession, transaction_id: uuid.UUID) -> int:
    """Return every credit held by a checkout to the AVAILABLE pool."""
    result = await db.execute(
        update(CarbonCredit)
        .where(CarbonCredit.transaction_id == transaction_id)
        .where(CarbonCredit.status == CreditStatus.RESERVED)
        .values(
            status=CreditStatus.AVAILABLE,
            transaction_id=None,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def sell_credits(
    db: AsyncSession,
    transaction_id: uuid.UUID,
    buyer_id: uuid.UUID,
) -> int:
    """
    Transfer ownership of a settled checkout's credits to the buyer.

    Every credit the checkout holds moves RESERVED -> SOLD. A PENDING
    checkout keeps its hold until it is closed, so this is normally the
    full amount; the caller compares the count with the purchase.

    Returns:
        The number of credits now SOLD to the buyer under this transaction.
    """
    result = await db.execute(
        update(CarbonCredit)
        .where(CarbonCredit.transaction_id == transaction_id)
        .where(CarbonCredit.status == CreditStatus.RESERVED)
        .values(status=CreditStatus.SOLD, owner_id=buyer_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def list_credits(
    db: AsyncSession,
    project_id: uuid.UUID | None = None,
    status_filter: CreditStatus = CreditStatus.AVAILABLE,
    vintage: int | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[CarbonCredit], int]:
    """
    List credits for the marketplace, AVAILABLE by default.

    Returns:
        Tuple of (credits on this page, total matching credits).
    """
    conditions = [CarbonCredit.status == status_filter]
    if project_id is not None:
        conditions.append(CarbonCredit.project_id == project_id)
    if vintage is not None:
        conditions.append(CarbonCredit.vintage == vintage)
    if min_price_cents is not None:
        conditions.append(CarbonCredit.price_cents >= min_price_cents)
    if max_price_cents is not None:
        conditions.append(CarbonCredit.price_cents <= max_price_cents)

    total = (
        await db.execute(select(func.count(CarbonCredit.id)).where(*conditions))
    ).scalar_one()

    result = await db.execute(
        select(CarbonCredit)
        .where(*conditions)
        .order_by(CarbonCredit.created_at.desc(), CarbonCredit.serial_number)
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def list_owned_credits(
    db: AsyncSession,
    owner_id: uuid.UUID,
    status_filter: CreditStatus | None = None,
) -> list[CarbonCredit]:
    """List credits owned by a member (SOLD and RETIRED unless filtered)."""
    query = (
        select(CarbonCredit)
        .where(CarbonCredit.owner_id == owner_id)
        .order_by(CarbonCredit.serial_number)
    )
    if status_filter is not None:
        query = query.where(CarbonCredit.status == status_filter)

    result = await db.execute(query)
    return list(result.scalars().all())


async def retire_credit(
    db: AsyncSession,
    credit_id: uuid.UUID,
    owner_id: uuid.UUID,
    reason: str,
    retired_at: datetime | None = None,
) -> tuple[CarbonCredit, RetirementCertificate]:
    """
    Permanently retire a SOLD credit owned by the caller.

    The SOLD -> RETIRED step is a conditional UPDATE scoped to the owner, so
    a credit can only be retired once, and only by its owner.

    Returns:
        Tuple of (retired credit, certificate).

    Raises:
        NotFoundError: If the credit doesn't exist, isn't owned by the
            caller, or isn't SOLD. The three cases are indistinguishable to
            the caller so credit ownership isn't leaked.
    """
    retired_at = retired_at or datetime.now(timezone.utc)

    result = await db.execute(
        update(CarbonCredit)
        .where(CarbonCredit.id == credit_id)
        .where(CarbonCredit.owner_id == owner_id)
        .where(CarbonCredit.status == CreditStatus.SOLD)
        .values(
            status=CreditStatus.RETIRED,
            retired_at=retired_at,
            retirement_reason=reason,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Credit", credit_id)

    credit = (
        await db.execute(
            select(CarbonCredit)
            .where(CarbonCredit.id == credit_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    project = await db.get(CarbonProject, credit.project_id)

    certificate = RetirementCertificate(
        credit_id=credit.id,
        user_id=owner_id,
        project_id=credit.project_id,
        certificate_number=(
            f"RC-{retired_at.strftime('%Y%m%d%H%M%S')}-{credit.id.hex[-6:].upper()}"
        ),
        serial_number=credit.serial_number,
        vintage=credit.vintage,
        quantity=credit.quantity,
        reason=reason,
        project_title=project.title,
        retired_at=retired_at,
    )
    db.add(certificate)
    await db.flush()

    logger.info("Credit %s retired by %s (%s)", credit.serial_number, owner_id, certificate.certificate_number)
    return credit, certificate


async def get_retirement_history(
    db: AsyncSession,
    credit_id: uuid.UUID,
    owner_id: uuid.UUID,
) -> tuple[CarbonCredit, list[RetirementCertificate]]:
    """
    Get a credit the caller owns together with its retirement certificates.

    Raises:
        NotFoundError: If the credit doesn't exist or isn't owned by the caller.
    """
    credit = (
        await db.execute(
            select(CarbonCredit)
            .where(CarbonCredit.id == credit_id)
            .where(CarbonCredit.owner_id == owner_id)
        )
    ).scalar_one_or_none()
    if credit is None:
        raise NotFoundError("Credit", credit_id)

    result = await db.execute(
        select(RetirementCertificate)
        .where(RetirementCertificate.credit_id == credit_id)
        .order_by(RetirementCertificate.retired_at.desc())
    )
    return credit, list(result.scalars().all())

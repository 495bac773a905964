"""Payment ledger: the single source of truth for whether a transaction settled.

Status changes go through :func:`transition`, a conditional UPDATE guarded by
the current status, so two deliveries racing for the same row produce exactly
one winner. Functions here flush but never commit; the caller owns the unit of
work.
"""

import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.clock import utcnow
from scouting_server.models.invoice import Invoice
from scouting_server.models.payment import Payment, PaymentStatus
from scouting_server.services.audit_service import to_jsonable

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PaymentStatus.PENDING: (PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED),
    # Возврат проводит только администратор
    PaymentStatus.COMPLETED: (PaymentStatus.REFUNDED,),
}

_UNSET = object()


class PaymentNotFoundError(LookupError):
    pass


class PaymentLinkError(Exception):
    pass


class InvalidPaymentTransition(Exception):
    def __init__(self, from_status: PaymentStatus, to_status: PaymentStatus):
        super().__init__(f"Payment cannot move from {from_status.value} to {to_status.value}")
        self.from_status = from_status
        self.to_status = to_status


def generate_transaction_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    millis = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"TXN-{millis}-{secrets.token_hex(4)}"


async def create_payment(
    db: AsyncSession,
    user_id: int,
    transaction_id: str,
    amount: Decimal,
    currency: str = "XOF",
    payment_method: Optional[str] = None,
) -> Payment:
    payment = Payment(
        user_id=user_id,
        transaction_id=transaction_id,
        amount=amount,
        currency=currency.upper(),
        status=PaymentStatus.PENDING.value,
        payment_method=payment_method,
    )
    db.add(payment)
    await db.flush()
    return payment


async def find_by_transaction_id(db: AsyncSession, transaction_id: str) -> Optional[Payment]:
    result = await db.execute(select(Payment).filter_by(transaction_id=transaction_id))
    return result.scalars().first()


async def transition(
    db: AsyncSession,
    payment: Payment,
    to_status: PaymentStatus,
    *,
    from_status: PaymentStatus = PaymentStatus.PENDING,
    raw_response: Any = _UNSET,
    now: Optional[datetime] = None,
) -> bool:
    """Move ``payment`` to ``to_status`` if it is still in ``from_status``.

    Returns ``True`` when this call performed the change. Either way the
    instance is refreshed, so a losing caller sees the status that won.
    """
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, ()):
        raise InvalidPaymentTransition(from_status, to_status)

    values = {"status": to_status.value}
    if to_status is PaymentStatus.COMPLETED:
        values["completed_at"] = now or utcnow()
    elif to_status is PaymentStatus.REFUNDED:
        # Only completed payments hold a subscription link
        values["subscription_id"] = None
    if raw_response is not _UNSET:
        values["gateway_response"] = to_jsonable(raw_response)

    result = await db.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == from_status.value)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.refresh(payment)
    won = result.rowcount == 1
    if won:
        logger.info(
            "Payment %s: %s -> %s", payment.transaction_id, from_status.value, to_status.value
        )
    else:
        logger.info(
            "Payment %s not in %s (now %s); transition to %s skipped",
            payment.transaction_id,
            from_status.value,
            payment.status,
            to_status.value,
        )
    return won


async def mark_completed(
    db: AsyncSession, payment: Payment, raw_response: Any, now: Optional[datetime] = None
) -> bool:
    return await transition(
        db, payment, PaymentStatus.COMPLETED, raw_response=raw_response, now=now
    )


async def mark_failed(db: AsyncSession, payment: Payment, raw_response: Any = _UNSET) -> bool:
    return await transition(db, payment, PaymentStatus.FAILED, raw_response=raw_response)


async def mark_cancelled(db: AsyncSession, payment: Payment, raw_response: Any = _UNSET) -> bool:
    return await transition(db, payment, PaymentStatus.CANCELLED, raw_response=raw_response)


async def mark_refunded(db: AsyncSession, payment: Payment) -> bool:
    return await transition(
        db, payment, PaymentStatus.REFUNDED, from_status=PaymentStatus.COMPLETED
    )


async def link_subscription(db: AsyncSession, payment: Payment, subscription_id: int) -> None:
    result = await db.execute(
        update(Payment)
        .where(
            Payment.id == payment.id,
            Payment.status == PaymentStatus.COMPLETED.value,
            Payment.subscription_id.is_(None),
        )
        .values(subscription_id=subscription_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PaymentLinkError(
            f"Payment {payment.transaction_id} is not an unlinked completed payment"
        )
    await db.refresh(payment)


async def find_unlinked_completed(db: AsyncSession, limit: int = 100) -> List[Payment]:
    result = await db.execute(
        select(Payment)
        .filter(
            Payment.status == PaymentStatus.COMPLETED.value,
            Payment.subscription_id.is_(None),
        )
        .order_by(Payment.completed_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def generate_invoice(db: AsyncSession, payment: Payment) -> Invoice:
    result = await db.execute(select(Invoice).filter_by(payment_id=payment.id))
    existing = result.scalars().first()
    if existing:
        return existing

    issued_at = payment.completed_at or utcnow()
    invoice = Invoice(
        user_id=payment.user_id,
        payment_id=payment.id,
        invoice_number=f"INV-{issued_at.year}-{payment.id:06d}",
        amount=payment.amount,
        currency=payment.currency,
        issued_at=issued_at,
        paid_at=payment.completed_at,
    )
    db.add(invoice)
    await db.flush()
    return invoice

"""Seeding and inspection helpers shared by the test modules."""

import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import httpx
from sqlalchemy import func, select

from scouting_server.gateways.base import compute_signature
from scouting_server.gateways.paydunya import PayDunyaAdapter
from scouting_server.models.audit_log import AuditLog
from scouting_server.models.invoice import Invoice
from scouting_server.models.payment import Payment
from scouting_server.models.subscription import Subscription
from scouting_server.models.user import User, UserRole, UserRoleAssignment

NOW = datetime(2026, 3, 1, 12, 0, 0)
CINETPAY_SECRET = "cinetpay-secret"
PAYDUNYA_SECRET = "paydunya-secret"


def run(coro):
    return asyncio.run(coro)


def sign(payload: dict, secret: str) -> str:
    return compute_signature(payload, secret)


async def seed_user(
    SessionLocal,
    email: str = "scout@example.com",
    telegram_id: Optional[int] = None,
    roles: Iterable[UserRole] = (),
) -> int:
    async with SessionLocal() as db:
        user = User(email=email, telegram_id=telegram_id)
        db.add(user)
        await db.flush()
        for role in roles:
            db.add(UserRoleAssignment(user_id=user.id, role=role.value))
        await db.commit()
        return user.id


async def seed_payment(
    SessionLocal,
    user_id: int,
    transaction_id: str = "TXN-1",
    amount: str = "50.00",
    currency: str = "XOF",
    status: str = "pending",
    payment_method: str = "cinetpay",
) -> int:
    async with SessionLocal() as db:
        payment = Payment(
            user_id=user_id,
            transaction_id=transaction_id,
            amount=Decimal(amount),
            currency=currency,
            status=status,
            payment_method=payment_method,
        )
        db.add(payment)
        await db.commit()
        return payment.id


async def seed_subscription(
    SessionLocal,
    user_id: int,
    status: str = "active",
    expires_at: Optional[datetime] = None,
    starts_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
) -> int:
    async with SessionLocal() as db:
        subscription = Subscription(
            user_id=user_id,
            status=status,
            starts_at=starts_at,
            expires_at=expires_at,
            updated_by="admin",
        )
        if created_at is not None:
            subscription.created_at = created_at
        db.add(subscription)
        await db.commit()
        return subscription.id


async def get_payment(SessionLocal, transaction_id: str) -> Payment:
    async with SessionLocal() as db:
        result = await db.execute(select(Payment).filter_by(transaction_id=transaction_id))
        return result.scalars().one()


async def get_subscriptions(SessionLocal, user_id: int) -> List[Subscription]:
    async with SessionLocal() as db:
        result = await db.execute(
            select(Subscription).filter_by(user_id=user_id).order_by(Subscription.id)
        )
        return list(result.scalars().all())


async def get_actions(SessionLocal) -> List[str]:
    async with SessionLocal() as db:
        result = await db.execute(select(AuditLog.action).order_by(AuditLog.id))
        return list(result.scalars().all())


async def get_audit_entries(SessionLocal, action: str) -> List[AuditLog]:
    async with SessionLocal() as db:
        result = await db.execute(select(AuditLog).filter_by(action=action).order_by(AuditLog.id))
        return list(result.scalars().all())


async def get_roles(SessionLocal, user_id: int) -> List[str]:
    async with SessionLocal() as db:
        result = await db.execute(select(UserRoleAssignment.role).filter_by(user_id=user_id))
        return list(result.scalars().all())


async def count_invoices(SessionLocal) -> int:
    async with SessionLocal() as db:
        return (await db.execute(select(func.count(Invoice.id)))).scalar_one()


def paydunya_adapter(
    amount="50.00",
    status: str = "completed",
    currency: Optional[str] = None,
    response_code: str = "00",
    error: Optional[Exception] = None,
    http_status: int = 200,
    calls: Optional[list] = None,
) -> PayDunyaAdapter:
    """PayDunya adapter whose confirm API is answered locally."""

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        if error is not None:
            raise error
        invoice = {"total_amount": amount}
        if currency:
            invoice["currency"] = currency
        body = {"response_code": response_code, "status": status, "invoice": invoice}
        return httpx.Response(http_status, json=body)

    return PayDunyaAdapter(api_base_url="https://paydunya.test/api/v1", transport=httpx.MockTransport(handler))

"""Operator endpoints: subscription overrides, refunds, audit queries, repair."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.api.deps import get_db, require_admin
from scouting_server.config import settings
from scouting_server.models.payment import PaymentStatus
from scouting_server.services import audit_service, payment_service, subscription_service, user_service
from scouting_server.services.audit_service import MAX_LIMIT
from scouting_server.services.webhook_dispatcher import repair_unlinked_payments

admin_router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ActivateRequest(BaseModel):
    duration_days: int = Field(default_factory=lambda: settings.subscription_duration_days, ge=1, le=3650)


async def _require_user(db: AsyncSession, user_id: int):
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@admin_router.post("/subscriptions/{user_id}/activate")
async def activate_subscription(
    user_id: int, body: Optional[ActivateRequest] = None, db: AsyncSession = Depends(get_db)
):
    body = body or ActivateRequest()
    await _require_user(db, user_id)
    subscription = await subscription_service.ensure_for_user(db, user_id, updated_by="admin")
    subscription = await subscription_service.activate(
        db, subscription.id, body.duration_days, updated_by="admin"
    )
    await audit_service.log(
        db,
        "admin_subscription_activated",
        target_user_id=user_id,
        metadata={
            "subscription_id": subscription.id,
            "duration_days": body.duration_days,
            "expires_at": subscription.expires_at,
        },
        commit=False,
    )
    await db.commit()
    return {
        "subscription_id": subscription.id,
        "status": subscription.status,
        "expires_at": subscription.expires_at.isoformat(),
    }


@admin_router.post("/subscriptions/{user_id}/cancel")
async def cancel_subscription(user_id: int, db: AsyncSession = Depends(get_db)):
    subscription = await subscription_service.find_by_user_id(db, user_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="No subscription found")
    subscription = await subscription_service.cancel(db, subscription.id, updated_by="admin")
    await audit_service.log(
        db,
        "admin_subscription_cancelled",
        target_user_id=user_id,
        metadata={"subscription_id": subscription.id},
        commit=False,
    )
    await db.commit()
    return {"subscription_id": subscription.id, "status": subscription.status}


@admin_router.post("/payments/{transaction_id}/refund")
async def refund_payment(transaction_id: str, db: AsyncSession = Depends(get_db)):
    payment = await payment_service.find_by_transaction_id(db, transaction_id)
    if payment is None:
        raise HTTPException(status_code=404, detail="Payment not found")
    if payment.status != PaymentStatus.COMPLETED.value:
        raise HTTPException(status_code=409, detail=f"Payment is {payment.status}, not completed")

    subscription_id = payment.subscription_id
    if not await payment_service.mark_refunded(db, payment):
        await db.rollback()
        raise HTTPException(status_code=409, detail="Payment changed concurrently")
    await audit_service.log(
        db,
        "admin_payment_refunded",
        target_user_id=payment.user_id,
        metadata={
            "transaction_id": transaction_id,
            "amount": payment.amount,
            "subscription_id": subscription_id,
        },
        commit=False,
    )
    await db.commit()
    return {"transaction_id": transaction_id, "status": payment.status}


@admin_router.get("/audit-logs")
async def list_audit_logs(
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=MAX_LIMIT),
    db: AsyncSession = Depends(get_db),
):
    entries = await audit_service.search(
        db, user_id=user_id, action=action, since=since, until=until, limit=limit
    )
    return [
        {
            "id": entry.id,
            "user_id": entry.user_id,
            "target_user_id": entry.target_user_id,
            "action": entry.action,
            "metadata": entry.details,
            "created_at": entry.created_at.isoformat(),
        }
        for entry in entries
    ]


@admin_router.post("/maintenance/repair")
async def repair_payments(db: AsyncSession = Depends(get_db)):
    repaired = await repair_unlinked_payments(
        db, duration_days=settings.subscription_duration_days
    )
    return {"repaired": repaired}

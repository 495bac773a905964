"""Subscription lifecycle: creation, activation, cancellation and expiry.

Writes flush only; callers commit.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.clock import utcnow
from scouting_server.models.subscription import Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

DEFAULT_DURATION_DAYS = 30


class SubscriptionNotFoundError(LookupError):
    pass


@dataclass
class SubscriptionState:
    status: SubscriptionStatus
    expires_at: Optional[datetime]
    is_active: bool

    def as_dict(self) -> dict:
        return {
            "status": self.status.value,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "is_active": self.is_active,
        }


async def find_by_user_id(db: AsyncSession, user_id: int) -> Optional[Subscription]:
    """Latest subscription row for the user; older rows are history."""
    result = await db.execute(
        select(Subscription)
        .filter_by(user_id=user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
    )
    return result.scalars().first()


async def get_subscription(db: AsyncSession, subscription_id: int) -> Subscription:
    subscription = await db.get(Subscription, subscription_id)
    if subscription is None:
        raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")
    return subscription


async def create(db: AsyncSession, user_id: int, updated_by: Optional[str] = None) -> Subscription:
    subscription = Subscription(
        user_id=user_id,
        status=SubscriptionStatus.NONE.value,
        auto_renew=False,
        updated_by=updated_by,
    )
    db.add(subscription)
    await db.flush()
    return subscription


async def ensure_for_user(
    db: AsyncSession, user_id: int, updated_by: Optional[str] = None
) -> Subscription:
    subscription = await find_by_user_id(db, user_id)
    if subscription is None:
        subscription = await create(db, user_id, updated_by=updated_by)
    return subscription


async def activate(
    db: AsyncSession,
    subscription_id: int,
    duration_days: int = DEFAULT_DURATION_DAYS,
    updated_by: str = "webhook",
    now: Optional[datetime] = None,
) -> Subscription:
    """Open a fresh window of ``duration_days`` starting now.

    Remaining time on a still-active window is not carried over.
    """
    subscription = await get_subscription(db, subscription_id)
    now = now or utcnow()

    subscription.status = SubscriptionStatus.ACTIVE.value
    subscription.starts_at = now
    subscription.expires_at = now + timedelta(days=duration_days)
    subscription.updated_by = updated_by
    subscription.updated_at = now
    await db.flush()
    logger.info(
        "Subscription %s activated until %s by %s",
        subscription.id,
        subscription.expires_at,
        updated_by,
    )
    return subscription


async def cancel(
    db: AsyncSession,
    subscription_id: int,
    updated_by: str = "user",
    now: Optional[datetime] = None,
) -> Subscription:
    subscription = await get_subscription(db, subscription_id)
    subscription.status = SubscriptionStatus.CANCELLED.value
    subscription.auto_renew = False
    subscription.updated_by = updated_by
    subscription.updated_at = now or utcnow()
    await db.flush()
    return subscription


def is_live(subscription: Optional[Subscription], now: Optional[datetime] = None) -> bool:
    if subscription is None or subscription.expires_at is None:
        return False
    now = now or utcnow()
    return (
        subscription.status == SubscriptionStatus.ACTIVE.value
        and subscription.expires_at > now
    )


async def is_active(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> bool:
    return is_live(await find_by_user_id(db, user_id), now)


async def get_status(
    db: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> SubscriptionState:
    subscription = await find_by_user_id(db, user_id)
    if subscription is None:
        return SubscriptionState(SubscriptionStatus.NONE, None, False)
    return SubscriptionState(
        status=SubscriptionStatus(subscription.status),
        expires_at=subscription.expires_at,
        is_active=is_live(subscription, now),
    )


async def expire_subscriptions(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Flip overdue active rows to expired in one statement evaluated against ``now``."""
    now = now or utcnow()
    result = await db.execute(
        update(Subscription)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.expires_at < now,
        )
        .values(
            status=SubscriptionStatus.EXPIRED.value,
            updated_by="system",
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("Expired %s subscription(s) as of %s", result.rowcount, now)
    return result.rowcount or 0

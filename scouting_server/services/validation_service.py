"""Read-only entitlement checks: may this user use this capability right now?"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.clock import utcnow
from scouting_server.models.subscription import SubscriptionStatus
from scouting_server.models.user import ADMIN_ROLES, UserRole
from scouting_server.services import subscription_service, user_service
from scouting_server.services.user_service import UserNotFoundError

# Свой профиль игрок ведёт бесплатно
PROFILE_ENDPOINTS = (
    "/api/players/me",
    "/api/players/profile",
    "/api/matches/my-matches",
    "/api/users/auth/me",
    "/api/stats/my-stats",
)

# Поиск и просмотр чужих данных только по подписке
SCOUT_ENDPOINTS = (
    "/api/players/search",
    "/api/players/list",
    "/api/dashboard",
    "/api/analytics",
)

DATA_ENTRY_ENDPOINTS = (
    "/api/data-entry/player-stats",
    "/api/data-entry/match-report",
    "/api/data-entry/forms",
)


@dataclass
class AccessDecision:
    has_access: bool
    roles: List[UserRole] = field(default_factory=list)
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    subscription_active: bool = False
    reason: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return any(role in ADMIN_ROLES for role in self.roles)

    def as_dict(self) -> dict:
        return {
            "has_access": self.has_access,
            "roles": [role.value for role in self.roles],
            "subscription_status": self.subscription_status.value,
            "reason": self.reason,
        }


async def validate_access(
    db: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> AccessDecision:
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")

    now = now or utcnow()
    roles = await user_service.get_user_roles(db, user_id)
    state = await subscription_service.get_status(db, user_id, now)

    decision = AccessDecision(
        has_access=True,
        roles=roles,
        subscription_status=state.status,
        subscription_active=state.is_active,
    )
    if decision.is_admin or UserRole.LIMITED_USER in roles:
        return decision

    if UserRole.SUBSCRIBER in roles:
        if not state.is_active:
            decision.has_access = False
            decision.reason = "Subscription expired or inactive"
        return decision

    decision.reason = "Free player access (scouts require subscription for full features)"
    return decision


def _matches(endpoint: str, prefixes) -> bool:
    return any(endpoint.startswith(prefix) for prefix in prefixes)


async def can_access_endpoint(
    db: AsyncSession, user_id: int, endpoint: str, now: Optional[datetime] = None
) -> bool:
    decision = await validate_access(db, user_id, now)
    if not decision.has_access:
        return False
    if decision.is_admin:
        return True

    if _matches(endpoint, PROFILE_ENDPOINTS):
        return True

    if _matches(endpoint, SCOUT_ENDPOINTS):
        return UserRole.SUBSCRIBER in decision.roles and decision.subscription_active

    if UserRole.LIMITED_USER in decision.roles:
        return _matches(endpoint, DATA_ENTRY_ENDPOINTS)

    return True

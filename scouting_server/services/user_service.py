"""Utility functions for working with :class:`User` via ``AsyncSession``."""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.models.user import User, UserRole, UserRoleAssignment


class UserNotFoundError(LookupError):
    pass


async def get_user_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    return await db.get(User, user_id)


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).filter_by(email=email.strip().lower()))
    return result.scalars().first()


async def create_user(db: AsyncSession, email: str, telegram_id: Optional[int] = None) -> User:
    user = User(email=email.strip().lower(), telegram_id=telegram_id)
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def get_user_roles(db: AsyncSession, user_id: int) -> List[UserRole]:
    result = await db.execute(
        select(UserRoleAssignment.role)
        .filter_by(user_id=user_id)
        .order_by(UserRoleAssignment.id)
    )
    roles = []
    for value in result.scalars().all():
        try:
            roles.append(UserRole(value))
        except ValueError:
            continue
    return roles


async def assign_role(
    db: AsyncSession, user_id: int, role: UserRole, assigned_by: Optional[str] = None
) -> UserRoleAssignment:
    """Grant ``role`` unless the user already has it. Flushes, does not commit."""
    result = await db.execute(
        select(UserRoleAssignment).filter_by(user_id=user_id, role=role.value)
    )
    existing = result.scalars().first()
    if existing:
        return existing

    assignment = UserRoleAssignment(user_id=user_id, role=role.value, assigned_by=assigned_by)
    db.add(assignment)
    await db.flush()
    return assignment

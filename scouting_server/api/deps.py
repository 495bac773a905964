"""Shared FastAPI dependencies: DB session, current user, admin guard."""

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.config import settings
from scouting_server.db.session import SessionLocal
from scouting_server.models.user import User
from scouting_server.services import user_service


async def get_db():
    async with SessionLocal() as db:
        yield db


async def get_current_user(
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    # Пользователя аутентифицирует шлюз перед сервисом и передаёт его id в заголовке
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    user = await user_service.get_user_by_id(db, x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    expected = settings.admin_api_token
    if not expected:
        raise HTTPException(status_code=404, detail="Not found")
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(status_code=403, detail="Forbidden")

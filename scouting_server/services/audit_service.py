"""Append-only audit trail.

``log`` commits by default so that an entry survives whatever happens to the
caller's later work; pass ``commit=False`` to write it inside a larger unit.
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scouting_server.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def to_jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


async def log(
    db: AsyncSession,
    action: str,
    *,
    user_id: Optional[int] = None,
    target_user_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = True,
) -> AuditLog:
    entry = AuditLog(
        action=action,
        user_id=user_id,
        target_user_id=target_user_id,
        details=to_jsonable(metadata) if metadata is not None else None,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
    )
    db.add(entry)
    if commit:
        await db.commit()
    else:
        await db.flush()
    logger.debug("audit %s user=%s", action, user_id)
    return entry


def _clamp(limit: int) -> int:
    return max(1, min(int(limit), MAX_LIMIT))


async def search(
    db: AsyncSession,
    *,
    user_id: Optional[int] = None,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = DEFAULT_LIMIT,
    offset: int = 0,
) -> List[AuditLog]:
    query = select(AuditLog)
    if user_id is not None:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if since is not None:
        query = query.filter(AuditLog.created_at >= since)
    if until is not None:
        query = query.filter(AuditLog.created_at < until)
    query = (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(max(offset, 0))
        .limit(_clamp(limit))
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def find_by_user(db: AsyncSession, user_id: int, limit: int = DEFAULT_LIMIT) -> List[AuditLog]:
    return await search(db, user_id=user_id, limit=limit)


async def find_by_action(db: AsyncSession, action: str, limit: int = DEFAULT_LIMIT) -> List[AuditLog]:
    return await search(db, action=action, limit=limit)


async def find_in_range(
    db: AsyncSession,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = DEFAULT_LIMIT,
) -> List[AuditLog]:
    return await search(db, since=since, until=until, limit=limit)

"""Periodic maintenance: expire overdue subscriptions, then re-drive unlinked payments."""

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from scouting_server.clock import Clock, system_clock
from scouting_server.services import audit_service, subscription_service
from scouting_server.services.subscription_service import DEFAULT_DURATION_DAYS
from scouting_server.services.webhook_dispatcher import repair_unlinked_payments

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired: int
    repaired: int


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        interval_seconds: float = 3600,
        clock: Clock = system_clock,
        duration_days: int = DEFAULT_DURATION_DAYS,
    ):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self.clock = clock
        self.duration_days = duration_days
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> SweepReport:
        now = self.clock.now()
        async with self.session_factory() as db:
            expired = await subscription_service.expire_subscriptions(db, now)
            if expired:
                await audit_service.log(
                    db,
                    "subscriptions_expired",
                    metadata={"count": expired, "as_of": now},
                    commit=False,
                )
            await db.commit()

            repaired = await repair_unlinked_payments(
                db, clock=self.clock, duration_days=self.duration_days
            )
        return SweepReport(expired=expired, repaired=repaired)

    async def _run_forever(self) -> None:
        while True:
            try:
                report = await self.run_once()
                logger.debug("Sweep done: %s", report)
            except Exception:
                logger.exception("Subscription sweep failed")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

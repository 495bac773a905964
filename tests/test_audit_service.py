from datetime import datetime
from decimal import Decimal

from factories import run, seed_user
from scouting_server.models.audit_log import AuditLog
from scouting_server.services import audit_service


def test_log_serialises_metadata(session_factory):
    async def write():
        async with session_factory() as db:
            entry = await audit_service.log(
                db,
                "cinetpay_payment_completed",
                metadata={"amount": Decimal("50.00"), "at": datetime(2026, 3, 1), "ids": (1, 2)},
                ip_address="10.0.0.1",
                user_agent="x" * 400,
            )
            return await db.get(AuditLog, entry.id)

    entry = run(write())
    assert entry.details == {"amount": "50.00", "at": "2026-03-01T00:00:00", "ids": [1, 2]}
    assert entry.ip_address == "10.0.0.1"
    assert len(entry.user_agent) == 255


def test_uncommitted_entry_disappears_with_rollback(session_factory):
    async def write():
        async with session_factory() as db:
            await audit_service.log(db, "kept")
            await audit_service.log(db, "dropped", commit=False)
            await db.rollback()
            return [e.action for e in await audit_service.search(db)]

    assert run(write()) == ["kept"]


def test_search_filters_and_orders_newest_first(session_factory):
    first = run(seed_user(session_factory, "a@example.com"))
    second = run(seed_user(session_factory, "b@example.com"))

    async def scenario():
        async with session_factory() as db:
            for action, user_id, created_at in [
                ("paydunya_ipn_received", None, datetime(2026, 1, 1)),
                ("paydunya_payment_completed", first, datetime(2026, 1, 2)),
                ("admin_payment_refunded", second, datetime(2026, 1, 3)),
                ("paydunya_payment_completed", second, datetime(2026, 1, 4)),
            ]:
                entry = await audit_service.log(db, action, user_id=user_id, commit=False)
                entry.created_at = created_at
            await db.commit()

            by_user = await audit_service.find_by_user(db, second)
            by_action = await audit_service.find_by_action(db, "paydunya_payment_completed")
            in_range = await audit_service.find_in_range(
                db, since=datetime(2026, 1, 2), until=datetime(2026, 1, 4)
            )
            page = await audit_service.search(db, limit=1, offset=1)
            clamped = await audit_service.search(db, limit=10_000)
            return by_user, by_action, in_range, page, clamped

    by_user, by_action, in_range, page, clamped = run(scenario())
    assert [e.action for e in by_user] == ["paydunya_payment_completed", "admin_payment_refunded"]
    assert [e.user_id for e in by_action] == [second, first]
    assert [e.created_at.day for e in in_range] == [3, 2]
    assert [e.created_at.day for e in page] == [3]
    assert len(clamped) == 4

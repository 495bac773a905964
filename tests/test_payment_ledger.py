from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from factories import NOW, count_invoices, get_payment, run, seed_payment, seed_user
from scouting_server.models.payment import PaymentStatus
from scouting_server.services import payment_service, subscription_service
from scouting_server.services.payment_service import InvalidPaymentTransition, PaymentLinkError


def test_generate_transaction_id_format():
    txn = payment_service.generate_transaction_id(datetime(2026, 3, 1))
    prefix, millis, suffix = txn.split("-")
    assert prefix == "TXN"
    assert millis == "1772323200000"
    assert len(suffix) == 8
    assert txn != payment_service.generate_transaction_id(datetime(2026, 3, 1))


def test_create_payment_is_pending_and_unique(session_factory):
    user_id = run(seed_user(session_factory))

    async def create_twice():
        async with session_factory() as db:
            payment = await payment_service.create_payment(
                db, user_id, "TXN-9", Decimal("6543"), currency="xof", payment_method="cinetpay"
            )
            await db.commit()
            assert payment.status == "pending"
            assert payment.currency == "XOF"
        async with session_factory() as db:
            with pytest.raises(IntegrityError):
                await payment_service.create_payment(db, user_id, "TXN-9", Decimal("1"))
            await db.rollback()

    run(create_twice())


def test_transition_has_one_winner(session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id))

    async def complete_twice():
        async with session_factory() as db:
            payment = await payment_service.find_by_transaction_id(db, "TXN-1")
            first = await payment_service.mark_completed(db, payment, {"status": "ACCEPTED"}, now=NOW)
            second = await payment_service.mark_completed(db, payment, {"status": "ACCEPTED"}, now=NOW)
            failed = await payment_service.mark_failed(db, payment)
            await db.commit()
            return first, second, failed

    assert run(complete_twice()) == (True, False, False)
    payment = run(get_payment(session_factory, "TXN-1"))
    assert payment.status == "completed"
    assert payment.completed_at == NOW


def test_disallowed_transitions_raise(session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id))

    async def attempt():
        async with session_factory() as db:
            payment = await payment_service.find_by_transaction_id(db, "TXN-1")
            with pytest.raises(InvalidPaymentTransition):
                await payment_service.transition(db, payment, PaymentStatus.REFUNDED)
            with pytest.raises(InvalidPaymentTransition):
                await payment_service.transition(
                    db, payment, PaymentStatus.PENDING, from_status=PaymentStatus.FAILED
                )

    run(attempt())


def test_refund_only_from_completed(session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id, "TXN-P"))
    run(seed_payment(session_factory, user_id, "TXN-C", status="completed"))

    async def refund_both():
        async with session_factory() as db:
            pending = await payment_service.find_by_transaction_id(db, "TXN-P")
            completed = await payment_service.find_by_transaction_id(db, "TXN-C")
            outcome = (
                await payment_service.mark_refunded(db, pending),
                await payment_service.mark_refunded(db, completed),
            )
            await db.commit()
            return outcome

    assert run(refund_both()) == (False, True)
    assert run(get_payment(session_factory, "TXN-P")).status == "pending"
    assert run(get_payment(session_factory, "TXN-C")).status == "refunded"


def test_link_subscription_requires_unlinked_completed_payment(session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id, "TXN-P"))
    run(seed_payment(session_factory, user_id, "TXN-C", status="completed"))

    async def link():
        async with session_factory() as db:
            subscription = await subscription_service.create(db, user_id)
            pending = await payment_service.find_by_transaction_id(db, "TXN-P")
            completed = await payment_service.find_by_transaction_id(db, "TXN-C")

            with pytest.raises(PaymentLinkError):
                await payment_service.link_subscription(db, pending, subscription.id)

            unlinked = await payment_service.find_unlinked_completed(db)
            assert [p.transaction_id for p in unlinked] == ["TXN-C"]

            await payment_service.link_subscription(db, completed, subscription.id)
            assert completed.subscription_id == subscription.id
            with pytest.raises(PaymentLinkError):
                await payment_service.link_subscription(db, completed, subscription.id)
            assert await payment_service.find_unlinked_completed(db) == []
            await db.commit()

    run(link())


def test_invoice_is_generated_once_per_payment(session_factory):
    user_id = run(seed_user(session_factory))
    payment_id = run(seed_payment(session_factory, user_id))

    async def invoice_twice():
        async with session_factory() as db:
            payment = await payment_service.find_by_transaction_id(db, "TXN-1")
            await payment_service.mark_completed(db, payment, {}, now=NOW)
            first = await payment_service.generate_invoice(db, payment)
            second = await payment_service.generate_invoice(db, payment)
            await db.commit()
            return first, second

    first, second = run(invoice_twice())
    assert first.id == second.id
    assert first.invoice_number == f"INV-2026-{payment_id:06d}"
    assert first.amount == Decimal("50.00")
    assert first.paid_at == NOW
    assert run(count_invoices(session_factory)) == 1


def test_refund_drops_subscription_link(session_factory):
    user_id = run(seed_user(session_factory))
    run(seed_payment(session_factory, user_id, status="completed"))

    async def link_then_refund():
        async with session_factory() as db:
            subscription = await subscription_service.create(db, user_id)
            payment = await payment_service.find_by_transaction_id(db, "TXN-1")
            await payment_service.link_subscription(db, payment, subscription.id)
            assert payment.subscription_id == subscription.id
            refunded = await payment_service.mark_refunded(db, payment)
            await db.commit()
            return refunded

    assert run(link_then_refund()) is True
    payment = run(get_payment(session_factory, "TXN-1"))
    assert payment.status == "refunded"
    assert payment.subscription_id is None

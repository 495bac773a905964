"""Create the schema and a demo user with a pending payment, for local testing."""

import asyncio
from decimal import Decimal

from scouting_server.db.base import Base
from scouting_server.db.session import DATABASE_URL, SessionLocal, engine
from scouting_server.services import payment_service, subscription_service, user_service

DEMO_EMAIL = "scout@example.com"

print(f"🗂 Используется база данных: {DATABASE_URL}")


async def main() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as session:
        user = await user_service.get_user_by_email(session, DEMO_EMAIL)
        if not user:
            print("➕ Добавляю пользователя...")
            user = await user_service.create_user(session, DEMO_EMAIL)

        await subscription_service.ensure_for_user(session, user.id)
        transaction_id = payment_service.generate_transaction_id()
        await payment_service.create_payment(
            session, user.id, transaction_id, Decimal("6543"), "XOF", payment_method="cinetpay"
        )
        await session.commit()

    print(f"✅ Готово. user_id={user.id}, transaction_id={transaction_id}")
    print(f"   GET /api/webhooks/test-payment-success?transaction_id={transaction_id}")


if __name__ == "__main__":
    asyncio.run(main())

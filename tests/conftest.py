import asyncio
import sys
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

sys.path.append(str(Path(__file__).resolve().parents[1]))

from scouting_server.config import settings  # noqa: E402
from scouting_server.db.base import Base  # noqa: E402


def setup_test_db():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    TestingSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)

    async def init_models():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())
    return engine, TestingSessionLocal


@pytest.fixture
def session_factory():
    _, TestingSessionLocal = setup_test_db()
    return TestingSessionLocal


@pytest.fixture(autouse=True)
def gateway_settings(monkeypatch):
    monkeypatch.setattr(settings, "cinetpay_secret_key", "cinetpay-secret")
    monkeypatch.setattr(settings, "cinetpay_api_key", "cinetpay-api-key")
    monkeypatch.setattr(settings, "cinetpay_site_id", "105900")
    monkeypatch.setattr(settings, "paydunya_secret_key", "paydunya-secret")
    monkeypatch.setattr(settings, "paydunya_api_key", "paydunya-master-key")
    monkeypatch.setattr(settings, "telegram_bot_token", None)
    monkeypatch.setattr(settings, "subscription_duration_days", 30)
    return settings

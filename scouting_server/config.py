"""Runtime settings read from the environment (and ``.env`` when present)."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _optional(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip().strip("'\"")
    return value or None


@dataclass
class Settings:
    database_url: str = field(
        default_factory=lambda: os.getenv(
            "DATABASE_URL", f"sqlite+aiosqlite:///{BASE_DIR / 'db' / 'database.db'}"
        )
    )
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "production"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    cinetpay_api_key: Optional[str] = field(default_factory=lambda: _optional("CINETPAY_API_KEY"))
    cinetpay_site_id: Optional[str] = field(default_factory=lambda: _optional("CINETPAY_SITE_ID"))
    cinetpay_secret_key: Optional[str] = field(default_factory=lambda: _optional("CINETPAY_SECRET_KEY"))

    # PayDunya calls it the master key; the dashboard labels it the API key.
    paydunya_api_key: Optional[str] = field(default_factory=lambda: _optional("PAYDUNYA_API_KEY"))
    paydunya_secret_key: Optional[str] = field(default_factory=lambda: _optional("PAYDUNYA_SECRET_KEY"))
    paydunya_api_base_url: str = field(
        default_factory=lambda: os.getenv("PAYDUNYA_API_BASE_URL", "https://app.paydunya.com/api/v1")
    )

    gateway_timeout_seconds: float = field(
        default_factory=lambda: float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))
    )
    subscription_duration_days: int = field(
        default_factory=lambda: int(os.getenv("SUBSCRIPTION_DURATION_DAYS", "30"))
    )
    expiry_sweep_interval_seconds: float = field(
        default_factory=lambda: float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "3600"))
    )
    usd_to_xof_rate: int = field(default_factory=lambda: int(os.getenv("USD_TO_XOF_RATE", "655")))

    backend_url: str = field(default_factory=lambda: os.getenv("BACKEND_URL", "http://127.0.0.1:8000"))
    frontend_url: str = field(default_factory=lambda: os.getenv("FRONTEND_URL", "http://127.0.0.1:3000"))
    admin_api_token: Optional[str] = field(default_factory=lambda: _optional("ADMIN_API_TOKEN"))
    telegram_bot_token: Optional[str] = field(
        default_factory=lambda: _optional("TELEGRAM_BOT_TOKEN") or _optional("BOT_TOKEN")
    )

    enable_test_webhooks: bool = field(
        default_factory=lambda: _flag(
            "ENABLE_TEST_WEBHOOKS", os.getenv("APP_ENV") == "development"
        )
    )


settings = Settings()

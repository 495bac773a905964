import logging
from datetime import datetime
from typing import Optional

from telegram import Bot

from scouting_server.config import settings

logger = logging.getLogger(__name__)


async def send_telegram_message(chat_id: int, text: str) -> bool:
    """Отправка сообщения в Telegram пользователю с заданным chat_id."""
    token = settings.telegram_bot_token
    if not token:
        logger.info("TELEGRAM_BOT_TOKEN not set; message to %s not sent", chat_id)
        return False
    try:
        bot = Bot(token=token)
        logger.info("Sending Telegram message: chat_id=%s", chat_id)
        await bot.send_message(chat_id=chat_id, text=text)
        return True
    except Exception:
        logger.exception("Failed to send Telegram message to chat_id=%s", chat_id)
        return False


async def send_subscription_activated(
    email: str, expires_at: datetime, chat_id: Optional[int] = None
) -> bool:
    """Best-effort notice that a payment turned into an active subscription."""
    if not chat_id:
        logger.info(
            "Subscription activated for %s until %s (no Telegram chat linked)",
            email,
            expires_at,
        )
        return False
    text = (
        "✅ Оплата прошла успешно. Подписка активирована!\n"
        f"Аккаунт: {email}\n"
        f"Действует до: {expires_at.strftime('%d.%m.%Y')}"
    )
    return await send_telegram_message(chat_id=chat_id, text=text)

from datetime import datetime

import notifier.telegram as telegram_notifier
from factories import run


class FakeBot:
    sent = []

    def __init__(self, token):
        self.token = token

    async def send_message(self, chat_id, text):
        FakeBot.sent.append((self.token, chat_id, text))


def test_activation_message_is_sent_when_chat_is_linked(monkeypatch):
    FakeBot.sent = []
    monkeypatch.setattr(telegram_notifier.settings, "telegram_bot_token", "bot-token")
    monkeypatch.setattr(telegram_notifier, "Bot", FakeBot)

    sent = run(
        telegram_notifier.send_subscription_activated("scout@example.com", datetime(2026, 3, 31), 42)
    )

    assert sent is True
    [(token, chat_id, text)] = FakeBot.sent
    assert (token, chat_id) == ("bot-token", 42)
    assert "31.03.2026" in text


def test_activation_without_chat_or_token_is_skipped(monkeypatch):
    FakeBot.sent = []
    monkeypatch.setattr(telegram_notifier, "Bot", FakeBot)

    assert run(telegram_notifier.send_subscription_activated("a@example.com", datetime(2026, 3, 31))) is False
    assert run(telegram_notifier.send_telegram_message(42, "hello")) is False
    assert FakeBot.sent == []


def test_delivery_errors_are_swallowed(monkeypatch):
    class BrokenBot(FakeBot):
        async def send_message(self, chat_id, text):
            raise RuntimeError("network down")

    monkeypatch.setattr(telegram_notifier.settings, "telegram_bot_token", "bot-token")
    monkeypatch.setattr(telegram_notifier, "Bot", BrokenBot)

    assert run(telegram_notifier.send_telegram_message(42, "hello")) is False

import logging
import pytest
from unittest.mock import AsyncMock

from aiogram.exceptions import TelegramAPIError
from aiogram.methods import SendMessage

from utils.notify import make_notifier


@pytest.mark.asyncio
async def test_notifier_sends_to_owner_chat():
    bot = AsyncMock()
    notify = make_notifier(bot)

    assert await notify("42", "☀️ Доброе утро!") is True
    bot.send_message.assert_called_once_with(chat_id="42", text="☀️ Доброе утро!")


@pytest.mark.asyncio
async def test_notifier_swallows_telegram_error(caplog):
    bot = AsyncMock()
    method = SendMessage(chat_id=42, text="a")
    bot.send_message.side_effect = TelegramAPIError(method, "chat not found")
    notify = make_notifier(bot)

    with caplog.at_level(logging.ERROR):
        assert await notify("42", "⏰ Перерыв окончен") is False
    assert "Notification failed" in caplog.text

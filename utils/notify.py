from typing import Awaitable, Callable

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from utils.logging import get_logger

logger = get_logger(__name__)

Notifier = Callable[[str, str], Awaitable[bool]]


def make_notifier(bot: Bot) -> Notifier:
    """Отправка сообщений в чат. Ошибки Telegram логируются и не пробрасываются."""

    async def notify(chat_id: str, message: str) -> bool:
        try:
            await bot.send_message(chat_id=chat_id, text=message)
            logger.info("Notification sent", extra={"chat_id": chat_id})
            return True
        except TelegramAPIError as e:
            logger.error(
                "Notification failed",
                extra={"chat_id": chat_id, "error": str(e)},
            )
            return False

    return notify

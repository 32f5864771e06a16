"""
Общее для обработчиков: ссылка на оркестратор и проверка владельца чата
"""
from typing import Optional

from aiogram.types import Message

from services.orchestrator import Orchestrator
from utils.logging import set_log_context

# 👉 Глобальная ссылка, которую заполнит main.py после создания оркестратора
orchestrator: Optional[Orchestrator] = None


def owner_orchestrator(message: Message) -> Optional[Orchestrator]:
    """Оркестратор, если сообщение пришло от владельца; иначе None"""
    assert orchestrator is not None, "Orchestrator не инициализирован"
    chat_id = str(message.chat.id)
    if chat_id != orchestrator.chat_id:
        return None
    set_log_context(chat_id=chat_id)
    return orchestrator


def parse_rating(text: Optional[str]) -> tuple[int, Optional[str]]:
    """
    Разбирает "<оценка> [активность]".

    Raises:
        ValueError: оценка отсутствует или не число
    """
    parts = (text or "").strip().split(maxsplit=1)
    if not parts:
        raise ValueError("Нужна оценка от 1 до 7")
    excitement = int(parts[0])
    activity = parts[1] if len(parts) > 1 else None
    return excitement, activity

"""
Обработчики для раздела настроек
"""
import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from database.settings_db import SETTING_RANGES
from handlers.common import owner_orchestrator

logger = logging.getLogger(__name__)
router = Router()


def settings_text(snapshot: dict) -> str:
    lines = ["⚙️ Настройки"]
    for key, value in snapshot.items():
        low, high = SETTING_RANGES[key]
        lines.append(f"{key} = {value}  ({low}-{high})")
    lines.append("Изменить: /settings <КЛЮЧ> <значение>")
    return "\n".join(lines)


@router.message(Command("settings"))
async def cmd_settings(message: Message, command: CommandObject):
    """/settings - показать, /settings <КЛЮЧ> <значение> - изменить"""
    orch = owner_orchestrator(message)
    if orch is None:
        return

    parts = (command.args or "").split()
    if not parts:
        await message.answer(settings_text(orch.settings.snapshot()))
        return
    if len(parts) != 2:
        await message.answer("Формат: /settings <КЛЮЧ> <значение>")
        return

    key, raw = parts
    try:
        value = await orch.update_setting(key, raw)
    except ValueError as e:
        await message.answer(f"⚠️ {e}")
        return
    logger.info("Setting changed from chat", extra={"key": key.upper()})
    await message.answer(f"✅ {key.upper()} = {value}")

"""
Обработчики опросов: внутридневной check-in и утренний опрос
"""
import logging

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from handlers.common import owner_orchestrator, parse_rating

logger = logging.getLogger(__name__)
router = Router()


@router.message(Command("checkin"))
async def cmd_checkin(message: Message, command: CommandObject):
    """/checkin <1-7> [чем заняты]"""
    orch = owner_orchestrator(message)
    if orch is None:
        return
    try:
        excitement, activity = parse_rating(command.args)
        await orch.record_checkin(excitement, activity)
    except ValueError as e:
        await message.answer(f"⚠️ {e}\nФормат: /checkin <1-7> [чем заняты, до 30 символов]")
        return
    await message.answer("Спасибо! Ответ записан.")


@router.message(Command("morning"))
async def cmd_morning(message: Message, command: CommandObject):
    """/morning <1-7>"""
    orch = owner_orchestrator(message)
    if orch is None:
        return
    try:
        excitement, _ = parse_rating(command.args)
        await orch.record_morning(excitement)
    except ValueError as e:
        await message.answer(f"⚠️ {e}\nФормат: /morning <1-7>")
        return
    await message.answer("Записано! Над чем работаем? /pomodoro <задача> или /later")


@router.message(Command("reset_day"))
async def cmd_reset_day(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    await orch.reset_day()
    await message.answer("Утренний опрос сброшен.")

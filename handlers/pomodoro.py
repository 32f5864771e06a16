"""
Обработчики Pomodoro: старт, перерыв, откладывание, отказ, статус
"""
import logging

from aiogram import F, Router
from aiogram.filters import Command, CommandObject, StateFilter
from aiogram.fsm.context import FSMContext
from aiogram.types import Message

from handlers.common import owner_orchestrator
from models.pomodoro import PomodoroPhase
from services.orchestrator import OFFER_BREAK, OFFER_CHECKIN
from services.pomodoro_engine import InvalidTransitionError
from states.pomodoro import PomodoroStates

logger = logging.getLogger(__name__)
router = Router()


@router.message(Command("pomodoro"))
async def cmd_pomodoro(message: Message, command: CommandObject, state: FSMContext):
    """/pomodoro [задача] - без задачи спрашиваем её отдельным сообщением"""
    orch = owner_orchestrator(message)
    if orch is None:
        return
    task = (command.args or "").strip()
    if not task:
        await state.set_state(PomodoroStates.waiting_task)
        await message.answer("Над чем будете работать?")
        return
    await _start(message, task)


@router.message(Command("break"))
async def cmd_break(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    try:
        phase = await orch.start_offered_break()
    except InvalidTransitionError:
        await message.answer("Сначала завершите рабочую сессию или /abandon.")
        return
    minutes = orch.engine.time_remaining // 60
    kind = "Длинный" if phase == PomodoroPhase.LONG_BREAK else "Короткий"
    await message.answer(f"☕️ {kind} перерыв на {minutes} мин.")


@router.message(Command("later"))
async def cmd_later(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    offer = orch.snooze()
    if offer == OFFER_CHECKIN:
        minutes = orch.settings.snooze_duration
        await message.answer(f"Хорошо, спрошу снова через {minutes} мин.")
    elif offer == OFFER_BREAK:
        minutes = orch.settings.break_snooze_duration
        await message.answer(f"Хорошо, напомню о перерыве через {minutes} мин.")
    else:
        minutes = orch.settings.snooze_duration
        await message.answer(f"Хорошо, спрошу о задаче через {minutes} мин.")


@router.message(Command("abandon"))
async def cmd_abandon(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    await orch.abandon()
    await message.answer("Pomodoro прерван.")


@router.message(Command("status"))
async def cmd_status(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    await message.answer(await orch.status_text())


@router.message(Command("history"))
async def cmd_history(message: Message):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    await message.answer(await orch.history_text())


async def _start(message: Message, task: str):
    orch = owner_orchestrator(message)
    try:
        await orch.start_pomodoro(task)
    except ValueError as e:
        await message.answer(f"⚠️ {e}")
        return
    logger.info("Pomodoro started from chat", extra={"cycle_count": orch.engine.cycle_count})
    await message.answer(
        f"🍅 Погнали! {orch.engine.formatted_time()} на: {orch.engine.current_task}\n/abandon - прервать"
    )


# должен оставаться последним обработчиком роутера
@router.message(StateFilter(PomodoroStates.waiting_task), F.text)
async def process_task(message: Message, state: FSMContext):
    orch = owner_orchestrator(message)
    if orch is None:
        return
    if message.text.startswith("/"):
        await state.clear()
        await message.answer("Ввод задачи отменён.")
        return
    await state.clear()
    await _start(message, message.text)

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram.filters import CommandObject

from handlers import checkin, common, pomodoro
from handlers import settings as settings_handlers
from models.pomodoro import PomodoroPhase
from services.day_boundary import DayBoundaryDetector
from services.orchestrator import OFFER_CHECKIN, Orchestrator
from services.pomodoro_engine import PomodoroEngine
from states.pomodoro import PomodoroStates
from tests.helpers import settle


@pytest.fixture
def orch(store, settings, emitter, clock, monkeypatch):
    engine = PomodoroEngine(store, settings, emitter, clock)
    detector = DayBoundaryDetector(store, emitter, clock)
    orchestrator = Orchestrator(engine, detector, store, settings, AsyncMock(return_value=True), "42", clock)
    monkeypatch.setattr(common, "orchestrator", orchestrator)
    return orchestrator


def make_message(chat_id: int = 42, text: str = "") -> MagicMock:
    message = MagicMock()
    message.chat.id = chat_id
    message.text = text
    message.answer = AsyncMock()
    return message


def command(name: str, args=None) -> CommandObject:
    return CommandObject(prefix="/", command=name, args=args)


def make_state() -> MagicMock:
    state = MagicMock()
    state.set_state = AsyncMock()
    state.clear = AsyncMock()
    return state


@pytest.mark.parametrize(
    "text, expected",
    [("5", (5, None)), ("7 deep work", (7, "deep work")), ("  3   email triage ", (3, "email triage"))],
)
def test_parse_rating(text, expected):
    assert common.parse_rating(text) == expected


@pytest.mark.parametrize("text", [None, "", "   ", "five"])
def test_parse_rating_rejects(text):
    with pytest.raises(ValueError):
        common.parse_rating(text)


@pytest.mark.asyncio
async def test_checkin_records_response(orch, store):
    message = make_message()

    await checkin.cmd_checkin(message, command("checkin", "5 coding"))

    assert len(store.responses) == 1
    assert store.responses[0].activity == "coding"
    message.answer.assert_awaited_once_with("Спасибо! Ответ записан.")


@pytest.mark.asyncio
async def test_checkin_rejects_out_of_range(orch, store):
    message = make_message()

    await checkin.cmd_checkin(message, command("checkin", "9"))

    assert store.responses == []
    assert "⚠️" in message.answer.await_args.args[0]


@pytest.mark.asyncio
async def test_foreign_chat_is_ignored(orch, store):
    message = make_message(chat_id=7)

    await checkin.cmd_checkin(message, command("checkin", "5"))

    assert store.responses == []
    message.answer.assert_not_awaited()


@pytest.mark.asyncio
async def test_morning_marks_day(orch, store):
    message = make_message()

    await checkin.cmd_morning(message, command("morning", "6"))

    assert store.responses[0].excitement == 6
    assert await orch.detector.last_prompted_at() is not None


@pytest.mark.asyncio
async def test_pomodoro_with_task_starts_work(orch):
    message = make_message()

    await pomodoro.cmd_pomodoro(message, command("pomodoro", "write report"), make_state())

    assert orch.engine.phase == PomodoroPhase.WORK
    assert "25:00" in message.answer.await_args.args[0]
    await orch.engine.shutdown()


@pytest.mark.asyncio
async def test_pomodoro_without_task_asks_for_it(orch):
    """Тест: /pomodoro без задачи переводит в ожидание текста задачи."""
    message = make_message()
    state = make_state()

    await pomodoro.cmd_pomodoro(message, command("pomodoro"), state)

    state.set_state.assert_awaited_once_with(PomodoroStates.waiting_task)
    assert orch.engine.phase == PomodoroPhase.IDLE

    await pomodoro.process_task(make_message(text="write report"), state)

    state.clear.assert_awaited_once()
    assert orch.engine.current_task == "write report"
    await orch.engine.shutdown()


@pytest.mark.asyncio
async def test_task_input_cancelled_by_command(orch):
    state = make_state()
    message = make_message(text="/status")

    await pomodoro.process_task(message, state)

    state.clear.assert_awaited_once()
    assert orch.engine.phase == PomodoroPhase.IDLE


@pytest.mark.asyncio
async def test_break_during_work_is_refused(orch):
    await orch.start_pomodoro("write report")
    message = make_message()

    await pomodoro.cmd_break(message)

    assert "/abandon" in message.answer.await_args.args[0]
    assert orch.engine.phase == PomodoroPhase.WORK
    await orch.engine.shutdown()


@pytest.mark.asyncio
async def test_break_from_idle(orch):
    message = make_message()

    await pomodoro.cmd_break(message)

    assert message.answer.await_args.args[0] == "☕️ Короткий перерыв на 5 мин."
    await orch.engine.shutdown()


@pytest.mark.asyncio
async def test_later_and_abandon(orch):
    message = make_message()

    await pomodoro.cmd_later(message)
    assert "30 мин" in message.answer.await_args.args[0]
    assert orch.engine.snapshot().snooze_pending

    await pomodoro.cmd_abandon(message)
    assert not orch.engine.snapshot().snooze_pending
    assert message.answer.await_args.args[0] == "Pomodoro прерван."


@pytest.mark.asyncio
async def test_status_and_history(orch):
    message = make_message()

    await pomodoro.cmd_status(message)
    assert "Фаза: ожидание" in message.answer.await_args.args[0]

    await pomodoro.cmd_history(message)
    assert "🍅 Сессии:" in message.answer.await_args.args[0]


@pytest.mark.asyncio
async def test_later_on_checkin_snoozes_the_question(orch, clock):
    orch.pending_offer = OFFER_CHECKIN
    message = make_message()

    await pomodoro.cmd_later(message)
    await settle()

    message.answer.assert_awaited_once_with("Хорошо, спрошу снова через 30 мин.")
    assert clock.pending == [30 * 60]
    assert not orch.engine.snapshot().snooze_pending
    await orch.shutdown()


def test_task_input_handler_is_registered_last():
    """Тест: команды в состоянии ожидания задачи доходят до своих обработчиков."""
    callbacks = [handler.callback for handler in pomodoro.router.message.handlers]

    assert callbacks[-1] is pomodoro.process_task
    assert callbacks.index(pomodoro.cmd_status) < callbacks.index(pomodoro.process_task)


@pytest.mark.asyncio
async def test_settings_without_args_shows_current_values(orch):
    message = make_message()

    await settings_handlers.cmd_settings(message, command("settings"))

    text = message.answer.await_args.args[0]
    assert "POMODORO_WORK_DURATION = 25" in text
    assert "WORKING_HOURS_START = 9" in text


@pytest.mark.asyncio
async def test_settings_changes_value(orch, store):
    message = make_message()

    await settings_handlers.cmd_settings(message, command("settings", "POMODORO_SNOOZE 45"))

    message.answer.assert_awaited_once_with("✅ POMODORO_SNOOZE = 45")
    assert orch.settings.snooze_duration == 45


@pytest.mark.parametrize("args", ["POMODORO_SNOOZE", "POMODORO_SNOOZE abc", "NOPE 5"])
@pytest.mark.asyncio
async def test_settings_rejects_bad_input(orch, args):
    message = make_message()

    await settings_handlers.cmd_settings(message, command("settings", args))

    assert message.answer.await_args.args[0].startswith(("⚠️", "Формат"))
    assert orch.settings.overrides == {}


@pytest.mark.asyncio
async def test_settings_ignores_foreign_chat(orch):
    message = make_message(chat_id=7)

    await settings_handlers.cmd_settings(message, command("settings", "POMODORO_SNOOZE 45"))

    message.answer.assert_not_awaited()
    assert orch.settings.snooze_duration == 30

"""
Оркестратор: связывает события ядра с чатом Telegram и команды пользователя
с планировщиком, детектором нового дня и Pomodoro движком.
"""
from typing import List, Optional

from database.settings_db import SettingsProvider, parse_setting_value
from models.pomodoro import PomodoroPhase
from models.response import Response, ResponseKind
from services.day_boundary import DayBoundaryDetector
from services.pomodoro_engine import PomodoroEngine
from services.prompt_scheduler import is_within_working_hours
from utils.events import Event, EventEmitter, EventKind
from utils.logging import get_logger
from utils.notify import Notifier
from utils.timing import Clock, OneShotTimer, format_remaining

logger = get_logger(__name__)

OFFER_TASK = "task"
OFFER_BREAK = "break"
OFFER_CHECKIN = "checkin"

SETTINGS_OVERRIDES_KEY = "settings_overrides"

CHECKIN_PROMPT = (
    "📝 Как дела? Насколько вам сейчас интересно то, чем вы заняты?\n"
    "Ответьте: /checkin <1-7> [чем заняты] или /later"
)

PHASE_TITLES = {
    PomodoroPhase.IDLE: "ожидание",
    PomodoroPhase.WORK: "🍅 работа",
    PomodoroPhase.SHORT_BREAK: "☕️ короткий перерыв",
    PomodoroPhase.LONG_BREAK: "☕️ длинный перерыв",
}


class Orchestrator:
    """Единственный подписчик на события ядра"""

    def __init__(
        self,
        engine: PomodoroEngine,
        detector: DayBoundaryDetector,
        store,
        settings: SettingsProvider,
        notify: Notifier,
        chat_id: str,
        clock: Optional[Clock] = None,
    ):
        self.engine = engine
        self.detector = detector
        self.store = store
        self.settings = settings
        self.notify = notify
        self.chat_id = chat_id
        self.clock = clock or Clock()

        # что сейчас предложено пользователю: задача, перерыв или опрос
        self.pending_offer: Optional[str] = None
        # предложение, которое перекрыл опрос; возвращается после ответа
        self._offer_before_checkin: Optional[str] = None
        self._checkin_snooze = OneShotTimer(self.clock, name="checkin-snooze")

    def wire(self, emitter: EventEmitter) -> None:
        emitter.on(EventKind.PROMPT_TRIGGERED, self.on_prompt_triggered)
        emitter.on(EventKind.NEW_DAY_DETECTED, self.on_new_day)
        emitter.on(EventKind.TIMER_TICK, self.on_timer_tick)
        emitter.on(EventKind.WORK_SESSION_ENDED, self.on_work_session_ended)
        emitter.on(EventKind.BREAK_ENDED, self.on_break_ended)
        emitter.on(EventKind.SNOOZE_ENDED, self.on_snooze_ended)
        emitter.on(EventKind.BREAK_SNOOZE_ENDED, self.on_break_snooze_ended)

    def should_suppress_new_day(self) -> bool:
        return self.engine.phase != PomodoroPhase.IDLE

    # === События ядра ===

    async def on_prompt_triggered(self, event: Event) -> None:
        await self._prompt_checkin()

    async def _prompt_checkin(self) -> None:
        start_hour, end_hour = self.settings.working_hours
        if not is_within_working_hours(self.clock.now(), start_hour, end_hour):
            logger.info("Intraday prompt dropped outside working hours")
            return
        # новый опрос заменяет отложенный
        if self._checkin_snooze.cancel():
            logger.info("Pending check-in snooze replaced by new prompt")
        await self._send_checkin()

    async def on_new_day(self, event: Event) -> None:
        self.pending_offer = OFFER_TASK
        await self._send(
            "☀️ Доброе утро! Насколько вы заряжены на сегодня?\n"
            "Ответьте: /morning <1-7>, затем /pomodoro <задача> или /later"
        )

    async def on_timer_tick(self, event: Event) -> None:
        if event.seconds is not None and event.seconds % 60 == 0:
            logger.debug("Timer tick", extra={"seconds": event.seconds, "phase": event.phase})

    async def on_work_session_ended(self, event: Event) -> None:
        self.pending_offer = OFFER_BREAK
        is_long = self.engine.is_long_break_due()
        minutes = self.settings.long_break_duration if is_long else self.settings.short_break_duration
        kind = "длинный" if is_long else "короткий"
        await self._send(
            f"✅ Сессия завершена! Время для перерыва: {kind}, {minutes} мин.\n"
            "/break - начать перерыв, /later - напомнить позже"
        )

    async def on_break_ended(self, event: Event) -> None:
        self.pending_offer = OFFER_TASK
        await self._send("⏰ Перерыв окончен. Над чем работаем дальше?\n/pomodoro <задача> или /later")

    async def on_snooze_ended(self, event: Event) -> None:
        self.pending_offer = OFFER_TASK
        await self._send("🍅 Готовы к следующей сессии? /pomodoro <задача>")

    async def on_break_snooze_ended(self, event: Event) -> None:
        await self.on_work_session_ended(event)

    # === Команды пользователя ===

    async def record_checkin(self, excitement: int, activity: Optional[str] = None) -> Response:
        """
        Raises:
            ValueError: невалидная оценка или активность
        """
        response = Response.create(ResponseKind.INTRADAY, excitement, activity, timestamp=self.clock.now())
        await self.store.add_response(response)
        self._checkin_snooze.cancel()
        if self.pending_offer == OFFER_CHECKIN:
            self.pending_offer = self._offer_before_checkin
            self._offer_before_checkin = None
        return response

    async def record_morning(self, excitement: int) -> Response:
        response = Response.create(ResponseKind.START_OF_DAY, excitement, timestamp=self.clock.now())
        await self.store.add_response(response)
        await self.detector.mark_prompted()
        return response

    async def start_pomodoro(self, task: str) -> None:
        await self.engine.start_work(task)
        self.pending_offer = None

    async def start_offered_break(self) -> PomodoroPhase:
        is_long = self.engine.is_long_break_due()
        await self.engine.start_break(is_long)
        self.pending_offer = None
        return self.engine.phase

    def snooze(self) -> str:
        """Откладывает текущее предложение. Возвращает, что именно отложено."""
        if self.pending_offer == OFFER_CHECKIN:
            minutes = self.settings.snooze_duration
            self._checkin_snooze.arm(minutes * 60, self._prompt_checkin)
            logger.info("Check-in snoozed", extra={"minutes": minutes})
            return OFFER_CHECKIN
        if self.pending_offer == OFFER_BREAK:
            self.engine.schedule_break_snooze()
            return OFFER_BREAK
        self.engine.schedule_snooze()
        return OFFER_TASK

    async def abandon(self) -> None:
        await self.engine.abandon()
        self.pending_offer = None

    async def reset_day(self) -> None:
        await self.detector.reset()

    async def update_setting(self, key: str, raw: str):
        """
        Изменить настройку из чата и сохранить переопределения в хранилище.

        Raises:
            ValueError: неизвестный ключ или недопустимое значение
        """
        key = key.upper()
        value = parse_setting_value(key, raw)
        self.settings.update({key: value})
        await self.store.set(SETTINGS_OVERRIDES_KEY, self.settings.overrides)
        return value

    async def restore_settings(self) -> None:
        """Подгружает сохранённые переопределения; негодные пропускаются."""
        saved = await self.store.get(SETTINGS_OVERRIDES_KEY)
        if not isinstance(saved, dict):
            return
        for key, raw in saved.items():
            try:
                self.settings.update({key: parse_setting_value(key, raw)})
            except ValueError:
                logger.warning("Ignoring stored setting", extra={"key": key, "value": str(raw)})

    async def status_text(self) -> str:
        snap = self.engine.snapshot()
        lines = [f"Фаза: {PHASE_TITLES[snap.phase]}"]
        if snap.phase != PomodoroPhase.IDLE:
            lines.append(f"Осталось: {format_remaining(snap.time_remaining)}")
        if snap.current_task:
            lines.append(f"Цель: {snap.current_task}")
        lines.append(f"Помидор в цикле: {snap.cycle_count}/4")
        done_today = await self.store.completed_sessions_today(self.clock.now())
        lines.append(f"Завершено сегодня: {done_today}")
        return "\n".join(lines)

    async def history_text(self, limit: int = 10) -> str:
        sessions = await self.store.fetch_recent_sessions(limit)
        responses = await self.store.fetch_recent_responses(limit)
        lines: List[str] = ["🍅 Сессии:"]
        for s in sessions:
            mark = "✅" if s.completed else ("❌" if s.end_time else "⏳")
            lines.append(f"{mark} {s.start_time:%d.%m %H:%M} #{s.pomodoro_number} {s.task_description}")
        lines.append("📝 Ответы:")
        for r in responses:
            suffix = f" - {r.activity}" if r.activity else ""
            lines.append(f"{r.timestamp:%d.%m %H:%M} {r.excitement}/7{suffix}")
        return "\n".join(lines)

    async def shutdown(self) -> None:
        await self._checkin_snooze.stop()

    async def _send_checkin(self) -> None:
        if self.pending_offer != OFFER_CHECKIN:
            self._offer_before_checkin = self.pending_offer
        self.pending_offer = OFFER_CHECKIN
        await self._send(CHECKIN_PROMPT)

    async def _send(self, text: str) -> None:
        await self.notify(self.chat_id, text)

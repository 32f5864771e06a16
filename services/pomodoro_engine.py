"""
Pomodoro движок: конечный автомат idle / work / short_break / long_break.

Все переходы сериализуются через asyncio.Lock, события отправляются после
выхода из критической секции. Активная фаза сохраняется чекпоинтом, чтобы
пережить перезапуск процесса и сон машины.
"""
import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, List, Optional

from database.settings_db import SettingsProvider
from models.pomodoro import CYCLE_LENGTH, Checkpoint, PomodoroPhase, PomodoroSession
from utils.events import Event, EventEmitter, EventKind
from utils.logging import get_logger
from utils.timing import Clock, OneShotTimer, format_remaining

logger = get_logger(__name__)

CHECKPOINT_KEY = "pomodoro_checkpoint"
CYCLE_COUNT_KEY = "pomodoro_cycle_count"
TICK_SECONDS = 1


class InvalidTransitionError(Exception):
    """Переход не допускается из текущей фазы."""


@dataclass(frozen=True)
class EngineSnapshot:
    phase: PomodoroPhase
    time_remaining: int
    current_task: str
    cycle_count: int
    session_id: Optional[str]
    snooze_pending: bool
    break_snooze_pending: bool


class PomodoroEngine:
    """Сервис Pomodoro с чекпоинтами и восстановлением"""

    def __init__(
        self,
        store,
        settings: SettingsProvider,
        emitter: EventEmitter,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            store: хранилище сессий и ключ-значение (MemoryStore, JsonFileStore, FirestoreStore)
            settings: источник длительностей
            emitter: куда отдавать события движка
            clock: источник времени
        """
        self.store = store
        self.settings = settings
        self.emitter = emitter
        self.clock = clock or Clock()

        self.phase = PomodoroPhase.IDLE
        self.time_remaining = 0
        self.current_task = ""
        self.cycle_count = 0

        self._session_id: Optional[str] = None
        self._phase_start: Optional[datetime] = None
        self._phase_duration = 0

        self._lock = asyncio.Lock()
        self._ticker: Optional[asyncio.Task] = None
        self._snooze = OneShotTimer(self.clock, name="pomodoro-snooze")
        self._break_snooze = OneShotTimer(self.clock, name="pomodoro-break-snooze")

    # === Запросы ===

    def is_long_break_due(self) -> bool:
        return self.cycle_count == CYCLE_LENGTH

    def formatted_time(self) -> str:
        return format_remaining(self.time_remaining)

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def is_ticking(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    def snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            phase=self.phase,
            time_remaining=self.time_remaining,
            current_task=self.current_task,
            cycle_count=self.cycle_count,
            session_id=self._session_id,
            snooze_pending=self._snooze.is_armed,
            break_snooze_pending=self._break_snooze.is_armed,
        )

    # === Переходы ===

    async def start_work(self, task: str) -> PomodoroSession:
        """
        Начинает рабочую фазу и создаёт запись сессии.

        Если уже идёт работа, текущая сессия закрывается как брошенная;
        идущий перерыв просто прерывается.

        Raises:
            ValueError: пустое описание задачи
        """
        task = (task or "").strip()
        if not task:
            raise ValueError("Описание задачи не может быть пустым")

        events: List[Event] = []
        async with self._lock:
            if self.phase == PomodoroPhase.WORK:
                await self._abandon_locked(events, emit_idle=False)
            elif self.phase.is_break:
                logger.info("Break interrupted by new work session", extra={"phase": self.phase.value})
                self._stop_ticker()
                await self._clear_checkpoint()

            self._snooze.cancel()
            self._break_snooze.cancel()

            now = self.clock.now()
            self.cycle_count = (self.cycle_count % CYCLE_LENGTH) + 1
            session = PomodoroSession(
                task_description=task,
                start_time=now,
                pomodoro_number=self.cycle_count,
            )
            self._session_id = session.id
            self.current_task = task
            self._enter_phase(PomodoroPhase.WORK, self.settings.work_duration * 60, now)

            await self._best_effort("add_pomodoro_session", self.store.add_pomodoro_session(session))
            await self._save_checkpoint()
            self._start_ticker()
            events.append(self._tick_event())

            logger.info(
                "Work phase started",
                extra={
                    "session_id": session.id,
                    "cycle_count": self.cycle_count,
                    "duration_sec": self._phase_duration,
                },
            )

        self._emit_all(events)
        return session

    async def start_break(self, is_long: bool) -> None:
        """
        Raises:
            InvalidTransitionError: во время рабочей фазы
        """
        events: List[Event] = []
        async with self._lock:
            if self.phase == PomodoroPhase.WORK:
                raise InvalidTransitionError("Нельзя начать перерыв во время работы")

            self._stop_ticker()
            self._break_snooze.cancel()

            phase = PomodoroPhase.LONG_BREAK if is_long else PomodoroPhase.SHORT_BREAK
            minutes = self.settings.long_break_duration if is_long else self.settings.short_break_duration
            self.current_task = ""
            self._enter_phase(phase, minutes * 60, self.clock.now())

            await self._save_checkpoint()
            self._start_ticker()
            events.append(self._tick_event())

            logger.info("Break started", extra={"phase": phase.value, "duration_sec": self._phase_duration})

        self._emit_all(events)

    async def abandon(self) -> None:
        """Прерывает текущую фазу и все отложенные напоминания."""
        events: List[Event] = []
        async with self._lock:
            await self._abandon_locked(events, emit_idle=True)
        self._emit_all(events)

    def schedule_snooze(self) -> None:
        """Отложить вопрос о следующей задаче на snoozeDuration минут."""
        minutes = self.settings.snooze_duration
        self._snooze.arm(minutes * 60, lambda: self._emit_snooze(EventKind.SNOOZE_ENDED))
        logger.info("Task prompt snoozed", extra={"minutes": minutes})

    def schedule_break_snooze(self) -> None:
        """Отложить предложение перерыва на breakSnoozeDuration минут."""
        minutes = self.settings.break_snooze_duration
        self._break_snooze.arm(minutes * 60, lambda: self._emit_snooze(EventKind.BREAK_SNOOZE_ENDED))
        logger.info("Break offer snoozed", extra={"minutes": minutes})

    async def tick(self) -> None:
        """Один шаг обратного отсчёта. Обычно вызывается фоновым тикером раз в секунду."""
        events: List[Event] = []
        async with self._lock:
            await self._tick_locked(events)
        self._emit_all(events)

    # === Восстановление ===

    async def restore_state(self) -> None:
        """
        Сверяет движок с сохранённым чекпоинтом после запуска процесса.

        Если фаза ещё не истекла - продолжаем с оставшимся временем.
        Если истекла, пока процесс не работал, - закрываем её так же, как закрыл
        бы живой отсчёт, но с временем окончания по чекпоинту.
        """
        events: List[Event] = []
        async with self._lock:
            if self.phase != PomodoroPhase.IDLE:
                logger.warning("Restore skipped, engine already active", extra={"phase": self.phase.value})
                return

            stored_count = await self._best_effort("get_cycle_count", self.store.get(CYCLE_COUNT_KEY))
            self.cycle_count = _valid_cycle_count(stored_count)

            raw = await self._best_effort("get_checkpoint", self.store.get(CHECKPOINT_KEY))
            if not raw:
                logger.info("No checkpoint, staying idle")
                return

            try:
                checkpoint = Checkpoint.from_dict(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Malformed checkpoint dropped", extra={"error": str(e)})
                await self._clear_checkpoint()
                return

            if checkpoint.phase == PomodoroPhase.IDLE:
                await self._clear_checkpoint()
                return

            now = self.clock.now()
            remaining = checkpoint.remaining_seconds(now)

            self.phase = checkpoint.phase
            self.current_task = checkpoint.current_task
            self.cycle_count = _valid_cycle_count(checkpoint.cycle_count)
            self._session_id = checkpoint.session_id
            self._phase_start = checkpoint.phase_start
            self._phase_duration = checkpoint.phase_duration_seconds

            if remaining > 0:
                self.time_remaining = remaining
                self._start_ticker()
                events.append(self._tick_event())
                logger.info(
                    "Phase resumed from checkpoint",
                    extra={"phase": self.phase.value, "remaining_sec": remaining},
                )
            else:
                logger.info(
                    "Phase expired while not running",
                    extra={"phase": self.phase.value, "overdue_sec": -remaining},
                )
                self.time_remaining = 0
                await self._finish_phase_locked(events, end_time=checkpoint.deadline)

        self._emit_all(events)

    async def reconcile(self) -> None:
        """
        Пересчитывает остаток по времени начала фазы.
        Вызывается после пробуждения: пока машина спит, секундный отсчёт стоит.
        """
        events: List[Event] = []
        async with self._lock:
            if self.phase == PomodoroPhase.IDLE or self._phase_start is None:
                return
            deadline = self._phase_start + timedelta(seconds=self._phase_duration)
            remaining = int((deadline - self.clock.now()).total_seconds())
            if remaining > 0:
                if remaining != self.time_remaining:
                    logger.info(
                        "Countdown resynchronized",
                        extra={"phase": self.phase.value, "was": self.time_remaining, "now": remaining},
                    )
                self.time_remaining = remaining
                events.append(self._tick_event())
            else:
                logger.info("Phase expired during sleep", extra={"phase": self.phase.value})
                self.time_remaining = 0
                await self._finish_phase_locked(events, end_time=deadline)
        self._emit_all(events)

    async def shutdown(self) -> None:
        """Останавливает таймеры, не трогая сохранённое состояние."""
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done():
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        await self._snooze.stop()
        await self._break_snooze.stop()

    # === Внутреннее (под блокировкой) ===

    def _enter_phase(self, phase: PomodoroPhase, duration_seconds: int, started_at: datetime) -> None:
        self.phase = phase
        self.time_remaining = duration_seconds
        self._phase_start = started_at
        self._phase_duration = duration_seconds

    async def _tick_locked(self, events: List[Event]) -> None:
        if self.phase == PomodoroPhase.IDLE:
            return
        self.time_remaining = max(0, self.time_remaining - TICK_SECONDS)
        events.append(self._tick_event())
        if self.time_remaining == 0:
            await self._finish_phase_locked(events, end_time=self.clock.now())

    async def _finish_phase_locked(self, events: List[Event], end_time: datetime) -> None:
        ended = self.phase
        session_id = self._session_id

        self._stop_ticker()
        await self._clear_checkpoint()

        self.phase = PomodoroPhase.IDLE
        self.time_remaining = 0
        self.current_task = ""
        self._session_id = None
        self._phase_start = None
        self._phase_duration = 0

        if ended == PomodoroPhase.WORK:
            await self._finalize_session(session_id, end_time, completed=True)
            events.append(Event(EventKind.WORK_SESSION_ENDED, phase=ended.value, session_id=session_id))
            logger.info(
                "Work session ended",
                extra={"session_id": session_id, "end_time": end_time.isoformat(), "cycle_count": self.cycle_count},
            )
        else:
            events.append(Event(EventKind.BREAK_ENDED, phase=ended.value))
            logger.info("Break ended", extra={"phase": ended.value})

    async def _abandon_locked(self, events: List[Event], emit_idle: bool) -> None:
        was = self.phase
        session_id = self._session_id

        self._stop_ticker()
        self._snooze.cancel()
        self._break_snooze.cancel()

        if was != PomodoroPhase.IDLE:
            await self._clear_checkpoint()

        self.phase = PomodoroPhase.IDLE
        self.time_remaining = 0
        self.current_task = ""
        self._session_id = None
        self._phase_start = None
        self._phase_duration = 0

        if was == PomodoroPhase.WORK:
            await self._finalize_session(session_id, self.clock.now(), completed=False)

        logger.info("Pomodoro abandoned", extra={"phase": was.value, "session_id": session_id})
        if emit_idle:
            events.append(self._tick_event())

    async def _finalize_session(self, session_id: Optional[str], end_time: datetime, completed: bool) -> None:
        if session_id:
            await self._best_effort(
                "finalize_session",
                self.store.finalize_session(session_id, end_time, completed),
            )
        else:
            # чекпоинт старого формата без id сессии
            await self._best_effort(
                "update_last_pomodoro_session",
                self.store.update_last_pomodoro_session(end_time, completed),
            )

    async def _save_checkpoint(self) -> None:
        checkpoint = Checkpoint(
            phase=self.phase,
            phase_start=self._phase_start,
            phase_duration_seconds=self._phase_duration,
            current_task=self.current_task,
            cycle_count=self.cycle_count,
            session_id=self._session_id,
        )
        await self._best_effort("save_checkpoint", self.store.set(CHECKPOINT_KEY, checkpoint.to_dict()))
        await self._best_effort("save_cycle_count", self.store.set(CYCLE_COUNT_KEY, self.cycle_count))

    async def _clear_checkpoint(self) -> None:
        await self._best_effort("clear_checkpoint", self.store.delete(CHECKPOINT_KEY))

    async def _best_effort(self, action: str, call: Awaitable[Any]) -> Any:
        """Сбой хранилища логируется и не ломает автомат."""
        try:
            return await call
        except Exception:
            logger.error("Store call failed", extra={"action": action}, exc_info=True)
            return None

    # === Тикер ===

    def _start_ticker(self) -> None:
        self._stop_ticker()
        self._ticker = asyncio.create_task(self._run_countdown(), name="pomodoro-countdown")

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None and not ticker.done() and ticker is not asyncio.current_task():
            ticker.cancel()

    async def _run_countdown(self) -> None:
        try:
            while True:
                await self.clock.sleep(TICK_SECONDS)
                events: List[Event] = []
                async with self._lock:
                    if self._ticker is not asyncio.current_task():
                        return
                    await self._tick_locked(events)
                    finished = self._ticker is not asyncio.current_task()
                self._emit_all(events)
                if finished:
                    return
        except asyncio.CancelledError:
            logger.debug("Countdown cancelled")
            raise

    # === События ===

    def _tick_event(self) -> Event:
        return Event(EventKind.TIMER_TICK, seconds=self.time_remaining, phase=self.phase.value)

    def _emit_snooze(self, kind: EventKind) -> None:
        logger.info("Snooze ended", extra={"event": kind.value})
        self.emitter.emit(Event(kind))

    def _emit_all(self, events: List[Event]) -> None:
        for event in events:
            self.emitter.emit(event)


def _valid_cycle_count(value: Any) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 0
    return count if 0 <= count <= CYCLE_LENGTH else 0

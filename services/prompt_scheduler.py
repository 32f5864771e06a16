"""
Планировщик внутридневных опросов.

Опросы приходят как пуассоновский поток внутри рабочих часов: интервал до
следующего опроса экспоненциальный со средним workingMinutes / promptsPerDay
и ограничен диапазоном [10, 240] минут.
"""
import math
import random
import sys
from datetime import datetime, timedelta
from typing import Optional

from database.settings_db import SettingsProvider
from utils.events import Event, EventEmitter, EventKind
from utils.logging import get_logger
from utils.timing import Clock, OneShotTimer, seconds_until_hour

logger = get_logger(__name__)

MIN_INTERVAL_MINUTES = 10.0
MAX_INTERVAL_MINUTES = 240.0

# нижняя граница равномерной выборки, чтобы не брать логарифм от нуля
UNIFORM_FLOOR = sys.float_info.epsilon


def compute_interval_minutes(average_prompts_per_day: float, working_minutes: float, u: float) -> float:
    """
    Интервал до следующего опроса в минутах.

    Args:
        average_prompts_per_day: среднее число опросов за рабочий день
        working_minutes: длина рабочего окна в минутах
        u: равномерная выборка из (0, 1)

    Raises:
        ValueError: неположительная интенсивность или u вне (0, 1)
    """
    if not 0.0 < u < 1.0:
        raise ValueError(f"u должно быть в (0, 1), получено: {u}")
    rate = average_prompts_per_day / working_minutes if working_minutes > 0 else 0.0
    if rate <= 0:
        raise ValueError(f"Интенсивность опросов должна быть положительной: {rate}")

    raw_minutes = -math.log(u) / rate
    return min(max(raw_minutes, MIN_INTERVAL_MINUTES), MAX_INTERVAL_MINUTES)


def draw_uniform(rng: random.Random) -> float:
    return max(rng.random(), UNIFORM_FLOOR)


def is_within_working_hours(now: datetime, start_hour: int, end_hour: int) -> bool:
    return start_hour <= now.hour < end_hour


class PromptScheduler:
    """
    Самоподдерживающийся цикл: таймер срабатывает, отдаёт PROMPT_TRIGGERED
    и заново вооружается, пока планировщик не остановлен.
    """

    def __init__(
        self,
        settings: SettingsProvider,
        emitter: EventEmitter,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings
        self.emitter = emitter
        self.clock = clock or Clock()
        self.rng = rng or random.Random()
        self._timer = OneShotTimer(self.clock, name="intraday-prompt")
        self._running = False
        self.next_fire_at: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает цикл. Повторный вызов сначала снимает уже взведённый таймер."""
        self._timer.cancel()
        self._running = True
        self._schedule_next()
        logger.info("Prompt scheduler started")

    async def stop(self) -> None:
        self._running = False
        self.next_fire_at = None
        await self._timer.stop()
        logger.info("Prompt scheduler stopped")

    def _schedule_next(self) -> None:
        if not self._running:
            return

        now = self.clock.now()
        start_hour, end_hour = self.settings.working_hours

        if not is_within_working_hours(now, start_hour, end_hour):
            delay = seconds_until_hour(now, start_hour)
            self._arm(now, delay, self._schedule_next)
            logger.info(
                "Outside working hours, waiting for work start",
                extra={"hour": now.hour, "start_hour": start_hour, "delay_sec": int(delay)},
            )
            return

        minutes = compute_interval_minutes(
            self.settings.average_prompts_per_day,
            (end_hour - start_hour) * 60.0,
            draw_uniform(self.rng),
        )
        self._arm(now, minutes * 60.0, self._fire)
        logger.info("Next intraday prompt scheduled", extra={"interval_min": round(minutes, 1)})

    def _arm(self, now: datetime, delay_seconds: float, callback) -> None:
        self.next_fire_at = now + timedelta(seconds=delay_seconds)
        self._timer.arm(delay_seconds, callback)

    def _fire(self) -> None:
        if not self._running:
            return
        logger.info("Intraday prompt triggered")
        self.emitter.emit(Event(EventKind.PROMPT_TRIGGERED))
        self._schedule_next()

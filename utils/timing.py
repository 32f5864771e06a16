"""
Общие утилиты времени: часы, одноразовые таймеры и расчёты по календарю.
Все таймеры живут в одном event loop и не блокируют вызывающего.
"""
import asyncio
import inspect
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[None]]]


class Clock:
    """Системные часы (локальное время). В тестах подменяются фейком."""

    def now(self) -> datetime:
        return datetime.now()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class OneShotTimer:
    """
    Слот для одного отложенного вызова.

    В слоте живёт не больше одной задачи: arm() отменяет предыдущую до создания
    новой. Отменённая или заменённая задача никогда не вызывает callback.
    Перед вызовом callback задача открепляется от слота, поэтому callback
    может снова вооружить тот же слот.
    """

    def __init__(self, clock: Clock, name: str = "timer"):
        self.clock = clock
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, delay_seconds: float, callback: TimerCallback) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run(delay_seconds, callback), name=self.name)
        logger.debug(
            "Timer armed",
            extra={"timer": self.name, "delay_sec": round(delay_seconds, 3)},
        )

    def cancel(self) -> bool:
        """Отменяет ожидающий вызов. Возвращает True, если было что отменять."""
        task, self._task = self._task, None
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def stop(self) -> None:
        """Отменяет таймер и дожидается завершения его задачи."""
        task = self._task
        self.cancel()
        if task is None or task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self, delay_seconds: float, callback: TimerCallback) -> None:
        await self.clock.sleep(delay_seconds)

        if self._task is not asyncio.current_task():
            # слот перевооружили или отменили, пока мы спали
            return
        self._task = None

        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error("Timer callback failed", extra={"timer": self.name}, exc_info=True)


def next_occurrence_of_hour(now: datetime, hour: int) -> datetime:
    """Ближайшее начало часа `hour`: сегодня, если ещё впереди, иначе завтра."""
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until_hour(now: datetime, hour: int) -> float:
    return (next_occurrence_of_hour(now, hour) - now).total_seconds()


def same_calendar_day(first: datetime, second: datetime) -> bool:
    return first.date() == second.date()


def format_remaining(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def parse_datetime(value) -> datetime:
    """Принимает datetime или ISO строку (формат хранилищ)."""
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)

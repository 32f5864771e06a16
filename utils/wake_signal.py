"""
Источник сигнала "система проснулась".

Сон машины определяется по расхождению часов: CLOCK_MONOTONIC не идёт во время
suspend, а настенное время идёт. Если между двумя опросами настенное время
ушло вперёд заметно больше монотонного - был сон. Платформенные хуки
(D-Bus PrepareForSleep, пробуждение экрана) могут слать сигнал напрямую через
notify_resumed_threadsafe().
"""
import asyncio
import inspect
import time
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Set, Union

from utils.logging import get_logger

logger = get_logger(__name__)

WakeCallback = Callable[[], Union[None, Awaitable[None]]]


class WakeSignalSource:
    """Edge-triggered сигнал: одно уведомление подписчикам на каждое пробуждение"""

    def __init__(
        self,
        poll_interval: float = 30.0,
        jump_threshold: float = 60.0,
        wall_time: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        day_start_hour: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            poll_interval: период опроса часов в секундах
            jump_threshold: на сколько секунд настенное время должно обогнать монотонное
            day_start_hour: час начала дня; при его прохождении подписчики тоже
                получают сигнал (для машин, которые не засыпают)
        """
        self.poll_interval = poll_interval
        self.jump_threshold = jump_threshold
        self._wall_time = wall_time
        self._monotonic = monotonic
        self.day_start_hour = day_start_hour
        self._subscribers: List[WakeCallback] = []
        self._pending: Set[asyncio.Task] = set()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._last_wall: Optional[float] = None
        self._last_mono: Optional[float] = None
        self._last_day_start: Optional[date] = None

    def subscribe(self, callback: WakeCallback) -> None:
        self._subscribers.append(callback)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def notify_resumed(self, reason: str = "manual") -> None:
        """Разослать сигнал пробуждения. Вызывать из потока event loop."""
        logger.info("System resume detected", extra={"reason": reason, "subscribers": len(self._subscribers)})
        for callback in list(self._subscribers):
            try:
                result = callback()
            except Exception:
                logger.error("Wake subscriber failed", exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_subscriber_done)

    def notify_resumed_threadsafe(self, reason: str = "os-hook") -> None:
        """Сигнал из чужого потока: доставка переносится в event loop."""
        if self._loop is None:
            raise RuntimeError("WakeSignalSource не привязан к event loop")
        self._loop.call_soon_threadsafe(self.notify_resumed, reason)

    def poll(self) -> bool:
        """
        Один опрос часов.

        Returns:
            True, если с прошлого опроса был сон или начался новый рабочий день (подписчики уже уведомлены)
        """
        wall, mono = self._wall_time(), self._monotonic()
        resumed = False
        if self._last_wall is not None and self._last_mono is not None:
            drift = (wall - self._last_wall) - (mono - self._last_mono)
            if drift > self.jump_threshold:
                resumed = True
                logger.info("Clock jump detected", extra={"drift_sec": round(drift, 1)})
        self._last_wall, self._last_mono = wall, mono

        day_started = self._passed_day_start(datetime.fromtimestamp(wall))
        if resumed:
            self.notify_resumed("clock-jump")
        elif day_started:
            self.notify_resumed("day-start")
        return resumed or day_started

    async def run(self, shutdown_event: Optional[asyncio.Event] = None) -> None:
        """
        Периодический опрос часов до установки shutdown_event.
        """
        self.bind_loop(asyncio.get_running_loop())
        logger.info("Wake watcher started", extra={"poll_interval_sec": self.poll_interval})
        self.poll()

        while True:
            if shutdown_event and shutdown_event.is_set():
                break
            try:
                if shutdown_event:
                    await asyncio.wait_for(shutdown_event.wait(), timeout=self.poll_interval)
                    break
                await asyncio.sleep(self.poll_interval)
            except asyncio.TimeoutError:
                pass

            try:
                self.poll()
            except Exception as e:
                logger.error("Wake poll failed", extra={"error": str(e)})

        logger.info("Wake watcher stopped")

    def _passed_day_start(self, now: datetime) -> bool:
        if self.day_start_hour is None:
            return False
        # последний день, чьё начало уже позади
        passed = now.date() if now.hour >= self.day_start_hour() else now.date() - timedelta(days=1)
        if self._last_day_start is None:
            self._last_day_start = passed
            return False
        if passed > self._last_day_start:
            self._last_day_start = passed
            logger.info("Day start passed", extra={"day": passed.isoformat()})
            return True
        return False

    def _on_subscriber_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            error = task.exception()
            logger.error("Wake subscriber failed", exc_info=(type(error), error, error.__traceback__))

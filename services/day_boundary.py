"""
Детектор начала нового дня.

Проверка запускается при старте и на каждый сигнал пробуждения системы.
Событие NEW_DAY_DETECTED отдаётся, если сейчас до полудня, сегодня ещё не
было утреннего опроса и внешний предикат не запрещает показ.
"""
from datetime import datetime
from typing import Callable, Optional

from utils.events import Event, EventEmitter, EventKind
from utils.logging import get_logger
from utils.timing import Clock, parse_datetime, same_calendar_day

logger = get_logger(__name__)

LAST_PROMPTED_KEY = "last_pomodoro_prompted_at"
MORNING_CUTOFF_HOUR = 12


class DayBoundaryDetector:
    """Детектор нового дня поверх хранилища ключ-значение"""

    def __init__(
        self,
        store,
        emitter: EventEmitter,
        clock: Optional[Clock] = None,
        should_suppress: Optional[Callable[[], bool]] = None,
    ):
        """
        Args:
            store: хранилище с get/set/delete (маркер последнего опроса)
            emitter: куда отдавать NEW_DAY_DETECTED
            clock: источник времени
            should_suppress: предикат вето, опрашивается при каждой проверке
        """
        self.store = store
        self.emitter = emitter
        self.clock = clock or Clock()
        self.should_suppress = should_suppress

    async def check_for_new_day(self) -> bool:
        """
        Returns:
            True, если событие нового дня было отправлено
        """
        now = self.clock.now()

        # утренний опрос показываем только до полудня
        if now.hour >= MORNING_CUTOFF_HOUR:
            logger.debug("New day check skipped after noon", extra={"hour": now.hour})
            return False

        try:
            last_prompted = await self.last_prompted_at()
        except Exception:
            logger.error("Failed to read last prompted marker", exc_info=True)
            return False

        if last_prompted is not None and same_calendar_day(last_prompted, now):
            logger.debug("Already prompted today", extra={"last_prompted": last_prompted.isoformat()})
            return False

        if self._is_suppressed():
            logger.info("New day prompt suppressed")
            return False

        logger.info(
            "New day detected",
            extra={"last_prompted": last_prompted.isoformat() if last_prompted else None},
        )
        self.emitter.emit(Event(EventKind.NEW_DAY_DETECTED))
        return True

    async def last_prompted_at(self) -> Optional[datetime]:
        raw = await self.store.get(LAST_PROMPTED_KEY)
        if not raw:
            return None
        try:
            return parse_datetime(raw)
        except (TypeError, ValueError):
            logger.warning("Malformed last prompted marker ignored", extra={"value": str(raw)})
            return None

    async def mark_prompted(self, when: Optional[datetime] = None) -> None:
        when = when or self.clock.now()
        try:
            await self.store.set(LAST_PROMPTED_KEY, when.isoformat())
        except Exception:
            logger.error("Failed to persist last prompted marker", exc_info=True)
            return
        logger.info("Marked prompted today", extra={"at": when.isoformat()})

    async def reset(self) -> None:
        """Сбрасывает маркер: следующая проверка сработает как в первый раз."""
        try:
            await self.store.delete(LAST_PROMPTED_KEY)
        except Exception:
            logger.error("Failed to clear last prompted marker", exc_info=True)
            return
        logger.info("Last prompted marker reset")

    def _is_suppressed(self) -> bool:
        if self.should_suppress is None:
            return False
        try:
            return bool(self.should_suppress())
        except Exception:
            logger.error("Suppression predicate failed", exc_info=True)
            return False

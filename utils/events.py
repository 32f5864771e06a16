"""
Типизированные события ядра и их доставка подписчику.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set, Union

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Виды событий, которые ядро отдаёт оркестратору"""
    PROMPT_TRIGGERED = "prompt_triggered"
    NEW_DAY_DETECTED = "new_day_detected"
    TIMER_TICK = "timer_tick"
    WORK_SESSION_ENDED = "work_session_ended"
    BREAK_ENDED = "break_ended"
    SNOOZE_ENDED = "snooze_ended"
    BREAK_SNOOZE_ENDED = "break_snooze_ended"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    seconds: Optional[int] = None  # только для TIMER_TICK
    phase: Optional[str] = None
    session_id: Optional[str] = None


EventHandler = Callable[[Event], Union[None, Awaitable[None]]]


class EventEmitter:
    """
    Один обработчик на каждый вид события.

    emit() не вызывает обработчик сразу, а ставит доставку в очередь event loop,
    поэтому обработчик может безопасно дёргать тот же компонент, что его вызвал.
    Порядок доставки совпадает с порядком emit(). Ошибки обработчиков
    логируются и дальше не идут.
    """

    def __init__(self):
        self._handlers: Dict[EventKind, EventHandler] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, kind: EventKind, handler: EventHandler) -> None:
        if kind in self._handlers:
            logger.warning("Event handler replaced", extra={"event": kind.value})
        self._handlers[kind] = handler

    def off(self, kind: EventKind) -> None:
        self._handlers.pop(kind, None)

    def has_handler(self, kind: EventKind) -> bool:
        return kind in self._handlers

    def emit(self, event: Event) -> None:
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.debug("No handler for event", extra={"event": event.kind.value})
            return
        asyncio.get_running_loop().call_soon(self._deliver, handler, event)

    async def drain(self) -> None:
        """Дожидается доставки всех уже отправленных событий."""
        for _ in range(3):
            await asyncio.sleep(0)
            while self._pending:
                await asyncio.gather(*list(self._pending), return_exceptions=True)
                await asyncio.sleep(0)

    def _deliver(self, handler: EventHandler, event: Event) -> None:
        try:
            result = handler(event)
        except Exception:
            logger.error("Event handler failed", extra={"event": event.kind.value}, exc_info=True)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(lambda t, kind=event.kind: self._on_handler_done(t, kind))

    def _on_handler_done(self, task: asyncio.Task, kind: EventKind) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Event handler failed",
                extra={"event": kind.value},
                exc_info=(type(error), error, error.__traceback__),
            )

import asyncio
from datetime import datetime, timedelta
from typing import List, Tuple

from utils.events import EventEmitter, EventKind


async def settle(rounds: int = 20) -> None:
    """Даёт event loop прокрутить отложенные колбэки и задачи."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Часы с ручным управлением: now() задаётся тестом, sleep() ждёт явного fire_next()."""

    def __init__(self, now: datetime):
        self.current = now
        self._sleepers: List[Tuple[float, asyncio.Future]] = []

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        future = asyncio.get_running_loop().create_future()
        entry = (seconds, future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    @property
    def pending(self) -> List[float]:
        return [seconds for seconds, future in self._sleepers if not future.done()]

    async def fire_next(self) -> float:
        """Пробуждает самый короткий сон, сдвигая время на его длину."""
        live = [(s, f) for s, f in self._sleepers if not f.done()]
        assert live, "нет ожидающих таймеров"
        seconds, future = min(live, key=lambda entry: entry[0])
        self.advance(seconds)
        future.set_result(None)
        await settle()
        return seconds


class EventRecorder:
    """Подписывается на все виды событий и складывает их в список."""

    def __init__(self, emitter: EventEmitter):
        self.events = []
        for kind in EventKind:
            emitter.on(kind, self.events.append)

    def of(self, kind: EventKind):
        return [e for e in self.events if e.kind == kind]

    def kinds(self):
        return [e.kind for e in self.events]


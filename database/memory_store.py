"""
In-memory хранилище ответов, Pomodoro сессий и состояния (чекпоинт, маркеры).
Используется в режиме разработки, в тестах и как основа для JsonFileStore.
"""
import copy
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from models.pomodoro import PomodoroSession
from models.response import Response

logger = logging.getLogger(__name__)


class MemoryStore:
    """Хранилище в памяти. Все операции асинхронные, как у остальных бэкендов."""

    def __init__(self):
        self.responses: List[Response] = []
        self.sessions: List[PomodoroSession] = []
        self.state: Dict[str, Any] = {}

    # === Ответы ===

    async def add_response(self, response: Response) -> None:
        self.responses.append(response)
        await self._save_responses()
        logger.debug("Response stored", extra={"response_id": response.id, "kind": response.kind.value})

    async def fetch_recent_responses(self, limit: int = 50) -> List[Response]:
        """Последние ответы, новые первыми"""
        return sorted(self.responses, key=lambda r: r.timestamp, reverse=True)[:limit]

    # === Pomodoro сессии ===

    async def add_pomodoro_session(self, session: PomodoroSession) -> None:
        self.sessions.append(copy.deepcopy(session))
        await self._save_sessions()
        logger.debug("Pomodoro session stored", extra={"session_id": session.id})

    async def get_session(self, session_id: str) -> Optional[PomodoroSession]:
        for session in self.sessions:
            if session.id == session_id:
                return copy.deepcopy(session)
        return None

    async def finalize_session(self, session_id: str, end_time: datetime, completed: bool) -> bool:
        """
        Закрывает сессию по id.

        Returns:
            False, если сессии нет или она уже закрыта
        """
        for session in self.sessions:
            if session.id == session_id:
                return await self._finalize(session, end_time, completed)
        logger.warning("Session to finalize not found", extra={"session_id": session_id})
        return False

    async def update_last_pomodoro_session(self, end_time: datetime, completed: bool) -> bool:
        """Закрывает последнюю добавленную сессию (наследие старого API)."""
        if not self.sessions:
            return False
        return await self._finalize(self.sessions[-1], end_time, completed)

    async def fetch_recent_sessions(self, limit: int = 50) -> List[PomodoroSession]:
        ordered = sorted(self.sessions, key=lambda s: s.start_time, reverse=True)[:limit]
        return [copy.deepcopy(s) for s in ordered]

    async def completed_sessions_today(self, now: Optional[datetime] = None) -> int:
        today = (now or datetime.now()).date()
        return sum(1 for s in self.sessions if s.completed and s.start_time.date() == today)

    # === Ключ-значение (чекпоинт, маркеры) ===

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self.state:
            return default
        return copy.deepcopy(self.state[key])

    async def set(self, key: str, value: Any) -> None:
        self.state[key] = copy.deepcopy(value)
        await self._save_state()

    async def delete(self, key: str) -> None:
        if self.state.pop(key, None) is not None:
            await self._save_state()

    # === Внутреннее ===

    async def _finalize(self, session: PomodoroSession, end_time: datetime, completed: bool) -> bool:
        if not session.finalize(end_time, completed):
            logger.warning(
                "Session already finalized",
                extra={"session_id": session.id, "completed": session.completed},
            )
            return False
        await self._save_sessions()
        return True

    async def _save_responses(self) -> None:
        pass

    async def _save_sessions(self) -> None:
        pass

    async def _save_state(self) -> None:
        pass

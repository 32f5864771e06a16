"""
Хранилище на Firestore: ответы, Pomodoro сессии и состояние приложения.
Синхронный клиент Firestore вызывается через asyncio.to_thread.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Any, List, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.transaction import Transaction

from models.pomodoro import PomodoroSession
from models.response import Response
from utils.logging import get_logger

logger = get_logger(__name__)

RESPONSES_COLLECTION = "responses"
SESSIONS_COLLECTION = "pomodoro_sessions"
STATE_COLLECTION = "app_state"


class FirestoreStore:
    """Firestore бэкенд с тем же интерфейсом, что и MemoryStore"""

    def __init__(self, db: firestore.Client):
        """
        Args:
            db: уже созданный клиент Firestore (см. utils.firestore_client)
        """
        self.db = db

    # === Ответы ===

    async def add_response(self, response: Response) -> None:
        await asyncio.to_thread(
            self.db.collection(RESPONSES_COLLECTION).document(response.id).set,
            response.to_dict(),
        )
        logger.info("Response stored", extra={"response_id": response.id, "kind": response.kind.value})

    async def fetch_recent_responses(self, limit: int = 50) -> List[Response]:
        docs = await asyncio.to_thread(
            lambda: list(
                self.db.collection(RESPONSES_COLLECTION)
                .order_by("timestamp", direction=firestore.Query.DESCENDING)
                .limit(limit)
                .stream()
            )
        )
        return [Response.from_dict(doc.to_dict()) for doc in docs]

    # === Pomodoro сессии ===

    async def add_pomodoro_session(self, session: PomodoroSession) -> None:
        await asyncio.to_thread(
            self.db.collection(SESSIONS_COLLECTION).document(session.id).set,
            session.to_dict(),
        )
        logger.info(
            "Pomodoro session stored",
            extra={"session_id": session.id, "pomodoro_number": session.pomodoro_number},
        )

    async def get_session(self, session_id: str) -> Optional[PomodoroSession]:
        doc = await asyncio.to_thread(self.db.collection(SESSIONS_COLLECTION).document(session_id).get)
        if not doc.exists:
            return None
        return PomodoroSession.from_dict(doc.to_dict())

    async def finalize_session(self, session_id: str, end_time: datetime, completed: bool) -> bool:
        """
        Закрывает сессию в транзакции: терминальные поля пишутся только один раз.

        Returns:
            False, если документа нет или сессия уже закрыта
        """
        doc_ref = self.db.collection(SESSIONS_COLLECTION).document(session_id)

        @firestore.transactional
        def finalize_once(transaction: Transaction) -> bool:
            doc = doc_ref.get(transaction=transaction)
            if not doc.exists:
                return False
            if doc.to_dict().get("end_time"):
                return False
            transaction.update(
                doc_ref,
                {"end_time": end_time.isoformat(), "completed": completed},
            )
            return True

        updated = await asyncio.to_thread(finalize_once, self.db.transaction())
        if updated:
            logger.info("Pomodoro session finalized", extra={"session_id": session_id, "completed": completed})
        else:
            logger.warning("Session not finalized", extra={"session_id": session_id, "reason": "missing or final"})
        return updated

    async def update_last_pomodoro_session(self, end_time: datetime, completed: bool) -> bool:
        """Закрывает самую позднюю по start_time сессию."""
        recent = await self.fetch_recent_sessions(limit=1)
        if not recent:
            return False
        return await self.finalize_session(recent[0].id, end_time, completed)

    async def fetch_recent_sessions(self, limit: int = 50) -> List[PomodoroSession]:
        docs = await asyncio.to_thread(
            lambda: list(
                self.db.collection(SESSIONS_COLLECTION)
                .order_by("start_time", direction=firestore.Query.DESCENDING)
                .limit(limit)
                .stream()
            )
        )
        return [PomodoroSession.from_dict(doc.to_dict()) for doc in docs]

    async def completed_sessions_today(self, now: Optional[datetime] = None) -> int:
        day_start = (now or datetime.now()).replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)
        # только диапазон по одному полю, чтобы не требовался составной индекс
        docs = await asyncio.to_thread(
            lambda: list(
                self.db.collection(SESSIONS_COLLECTION)
                .where("start_time", ">=", day_start.isoformat())
                .where("start_time", "<", day_end.isoformat())
                .stream()
            )
        )
        return sum(1 for doc in docs if doc.to_dict().get("completed"))

    # === Ключ-значение ===

    async def get(self, key: str, default: Any = None) -> Any:
        doc = await asyncio.to_thread(self.db.collection(STATE_COLLECTION).document(key).get)
        if not doc.exists:
            return default
        return doc.to_dict().get("value", default)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(
            self.db.collection(STATE_COLLECTION).document(key).set,
            {"value": value, "updated_at": datetime.utcnow()},
        )

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.db.collection(STATE_COLLECTION).document(key).delete)

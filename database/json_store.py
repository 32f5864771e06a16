"""
Хранилище на JSON файлах в каталоге данных приложения.
Запись через временный файл и os.replace, чтобы файл не оставался полузаписанным.
"""
import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, TypeVar

from database.memory_store import MemoryStore
from models.pomodoro import PomodoroSession
from models.response import Response

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESPONSES_FILE = "responses.json"
SESSIONS_FILE = "pomodoro-sessions.json"
STATE_FILE = "state.json"


class JsonFileStore(MemoryStore):
    """Хранилище с сохранением в JSON. Данные держатся в памяти и сбрасываются на диск при каждой записи."""

    def __init__(self, data_dir: Path):
        super().__init__()
        self._file_locks: Dict[str, asyncio.Lock] = {
            name: asyncio.Lock() for name in (RESPONSES_FILE, SESSIONS_FILE, STATE_FILE)
        }
        self.data_dir = Path(data_dir).expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True)

        self.responses = _load_list(self.data_dir / RESPONSES_FILE, Response.from_dict)
        self.sessions = _load_list(self.data_dir / SESSIONS_FILE, PomodoroSession.from_dict)
        state = _read_json(self.data_dir / STATE_FILE)
        self.state = state if isinstance(state, dict) else {}

        logger.info(
            "JSON store loaded",
            extra={
                "data_dir": str(self.data_dir),
                "responses": len(self.responses),
                "sessions": len(self.sessions),
            },
        )

    async def _save_responses(self) -> None:
        await self._write(RESPONSES_FILE, lambda: [r.to_dict() for r in self.responses])

    async def _save_sessions(self) -> None:
        await self._write(SESSIONS_FILE, lambda: [s.to_dict() for s in self.sessions])

    async def _save_state(self) -> None:
        await self._write(STATE_FILE, lambda: copy.deepcopy(self.state))

    async def _write(self, filename: str, snapshot: Callable[[], Any]) -> None:
        """
        Записи одного файла идут по очереди, снимок берётся под блокировкой,
        поэтому последним на диск ложится самое свежее состояние.
        """
        async with self._file_locks[filename]:
            payload = snapshot()
            await asyncio.to_thread(write_json_atomic, self.data_dir / filename, payload)


def write_json_atomic(path: Path, payload: Any) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def _read_json(path: Path) -> Any:
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Unreadable JSON file, starting empty", extra={"path": str(path), "error": str(e)})
        return None


def _load_list(path: Path, factory: Callable[[dict], T]) -> List[T]:
    data = _read_json(path)
    if not isinstance(data, list):
        return []
    items = []
    for raw in data:
        try:
            items.append(factory(raw))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping malformed record", extra={"path": str(path), "error": str(e)})
    return items

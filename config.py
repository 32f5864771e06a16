"""Конфигурация процесса"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from utils.env_loader import load_env

STORAGE_BACKENDS = ("json", "firestore", "memory")


@dataclass(frozen=True)
class Config:
    bot_token: str
    owner_chat_id: str
    data_dir: Path
    storage_backend: str = "json"
    google_credentials: Optional[str] = None
    firebase_project_id: Optional[str] = None
    log_level: str = "INFO"
    wake_poll_interval: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Читает конфигурацию из окружения (после загрузки .env).

        Raises:
            ValueError: нет BOT_TOKEN / OWNER_CHAT_ID или неизвестный STORAGE_BACKEND
        """
        if environ is None:
            load_env()
            environ = os.environ

        bot_token = environ.get("BOT_TOKEN")
        if not bot_token:
            raise ValueError("BOT_TOKEN не найден в переменных окружения!")

        owner_chat_id = environ.get("OWNER_CHAT_ID")
        if not owner_chat_id:
            raise ValueError("OWNER_CHAT_ID не найден в переменных окружения!")

        backend = environ.get("STORAGE_BACKEND", "json").lower()
        if backend not in STORAGE_BACKENDS:
            raise ValueError(f"Неизвестный STORAGE_BACKEND: {backend}")

        try:
            poll_interval = float(environ.get("WAKE_POLL_INTERVAL", "30"))
        except ValueError:
            poll_interval = 30.0

        return cls(
            bot_token=bot_token,
            owner_chat_id=owner_chat_id,
            data_dir=Path(environ.get("DATA_DIR", "~/.daypulse")).expanduser(),
            storage_backend=backend,
            google_credentials=environ.get("GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=environ.get("FIREBASE_PROJECT_ID"),
            log_level=environ.get("LOG_LEVEL", "INFO"),
            wake_poll_interval=poll_interval if poll_interval > 0 else 30.0,
        )

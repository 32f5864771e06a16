from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_env(env_path: Optional[Path] = None) -> bool:
    """Загружает .env из корня проекта (или указанный путь). Уже заданные переменные не перезаписываются."""
    path = env_path or Path(__file__).resolve().parent.parent / ".env"
    if path.exists():
        return load_dotenv(path, encoding="utf-8-sig", override=False)
    return load_dotenv(override=False)

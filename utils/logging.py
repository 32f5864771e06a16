import json
import logging
import re
import sys
from contextvars import ContextVar

# Контекст для корреляции событий планировщика и чата
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_chat_id_var: ContextVar[str | None] = ContextVar("chat_id", default=None)

_RESERVED = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
}


class JSONFormatter(logging.Formatter):
    """JSON formatter: одна строка лога = один JSON объект."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact_secrets(record.getMessage()),
            "correlation_id": _correlation_id_var.get(),
            "chat_id": _chat_id_var.get(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED or key.startswith("_"):
                continue
            log_obj[key] = value

        log_obj = {k: v for k, v in log_obj.items() if v is not None}

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Настройка корневого логгера с JSON выводом в stdout."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    logging.getLogger("aiogram").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_log_context(correlation_id: str | None = None, chat_id: str | None = None) -> None:
    """Устанавливает контекст корреляции; None значения не трогают текущий контекст."""
    if correlation_id is not None:
        _correlation_id_var.set(correlation_id)
    if chat_id is not None:
        _chat_id_var.set(chat_id)


def clear_log_context() -> None:
    _correlation_id_var.set(None)
    _chat_id_var.set(None)


def get_correlation_id() -> str | None:
    return _correlation_id_var.get()


def get_chat_id() -> str | None:
    return _chat_id_var.get()


_SECRET_RE = re.compile(r"(token|password|secret|api_key)=([^\s]+)", re.IGNORECASE)


def _redact_secrets(message: str) -> str:
    return _SECRET_RE.sub(lambda m: f"{m.group(1)}=***", message)

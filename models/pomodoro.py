import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from utils.timing import parse_datetime

CYCLE_LENGTH = 4  # рабочих сессий до длинного перерыва


class PomodoroPhase(str, Enum):
    IDLE = "idle"
    WORK = "work"
    SHORT_BREAK = "short_break"
    LONG_BREAK = "long_break"

    @property
    def is_break(self) -> bool:
        return self in (PomodoroPhase.SHORT_BREAK, PomodoroPhase.LONG_BREAK)


@dataclass
class PomodoroSession:
    """
    Запись о рабочей сессии. Терминальные поля (end_time, completed)
    выставляются ровно один раз - при завершении или отказе.
    """

    task_description: str
    start_time: datetime
    pomodoro_number: int  # 1-4
    end_time: Optional[datetime] = None
    completed: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None

    def finalize(self, end_time: datetime, completed: bool) -> bool:
        """Возвращает False, если сессия уже была закрыта."""
        if self.is_finalized:
            return False
        self.end_time = end_time
        self.completed = completed
        return True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "task_description": self.task_description,
            "completed": self.completed,
            "pomodoro_number": self.pomodoro_number,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PomodoroSession":
        end_time = data.get("end_time")
        return cls(
            id=data["id"],
            start_time=parse_datetime(data["start_time"]),
            end_time=parse_datetime(end_time) if end_time else None,
            task_description=data.get("task_description", ""),
            completed=bool(data.get("completed", False)),
            pomodoro_number=int(data.get("pomodoro_number", 1)),
        )


@dataclass(frozen=True)
class Checkpoint:
    """Снимок активной фазы. Существует тогда и только тогда, когда фаза != idle."""

    phase: PomodoroPhase
    phase_start: datetime
    phase_duration_seconds: int
    current_task: str
    cycle_count: int
    session_id: Optional[str] = None

    @property
    def deadline(self) -> datetime:
        return self.phase_start + timedelta(seconds=self.phase_duration_seconds)

    def remaining_seconds(self, now: datetime) -> int:
        elapsed = int((now - self.phase_start).total_seconds())
        return self.phase_duration_seconds - elapsed

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "phase_start": self.phase_start.isoformat(),
            "phase_duration_seconds": self.phase_duration_seconds,
            "current_task": self.current_task,
            "cycle_count": self.cycle_count,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Checkpoint":
        """Бросает KeyError/ValueError на повреждённой записи."""
        return cls(
            phase=PomodoroPhase(data["phase"]),
            phase_start=parse_datetime(data["phase_start"]),
            phase_duration_seconds=int(data["phase_duration_seconds"]),
            current_task=data.get("current_task") or "",
            cycle_count=int(data.get("cycle_count", 1)),
            session_id=data.get("session_id"),
        )

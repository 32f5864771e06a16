import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from utils.timing import parse_datetime

MIN_EXCITEMENT = 1
MAX_EXCITEMENT = 7
MAX_ACTIVITY_LENGTH = 30


class ResponseKind(str, Enum):
    START_OF_DAY = "start_of_day"
    INTRADAY = "intraday"


@dataclass(frozen=True)
class Response:
    """Ответ на опрос. После создания не меняется."""

    timestamp: datetime
    kind: ResponseKind
    excitement: int  # шкала Лайкерта 1-7
    activity: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(
        cls,
        kind: ResponseKind,
        excitement: int,
        activity: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "Response":
        """
        Создаёт ответ с валидацией.

        Raises:
            ValueError: оценка вне 1-7 или активность длиннее 30 символов
        """
        if isinstance(excitement, bool) or not isinstance(excitement, int):
            raise ValueError(f"excitement должно быть int, получено: {type(excitement)}")
        if not MIN_EXCITEMENT <= excitement <= MAX_EXCITEMENT:
            raise ValueError(f"Оценка должна быть от {MIN_EXCITEMENT} до {MAX_EXCITEMENT}: {excitement}")

        activity = activity.strip() if activity else None
        if activity and len(activity) > MAX_ACTIVITY_LENGTH:
            raise ValueError(f"Активность длиннее {MAX_ACTIVITY_LENGTH} символов")

        return cls(
            timestamp=timestamp or datetime.now(),
            kind=ResponseKind(kind),
            excitement=excitement,
            activity=activity or None,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.kind.value,
            "excitement": self.excitement,
            "activity": self.activity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Response":
        return cls(
            id=data["id"],
            timestamp=parse_datetime(data["timestamp"]),
            kind=ResponseKind(data["type"]),
            excitement=int(data["excitement"]),
            activity=data.get("activity"),
        )

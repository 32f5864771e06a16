"""
Настройки опросов и Pomodoro
"""

import logging
import os
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

# допустимые значения для изменения из чата, включительно
SETTING_RANGES: Dict[str, Tuple[float, float]] = {
    "WORKING_HOURS_START": (5, 12),
    "WORKING_HOURS_END": (14, 21),
    "AVERAGE_PROMPTS_PER_DAY": (1, 10),
    "POMODORO_WORK_DURATION": (1, 60),
    "POMODORO_SHORT_BREAK": (1, 30),
    "POMODORO_LONG_BREAK": (5, 60),
    "POMODORO_SNOOZE": (5, 120),
    "POMODORO_BREAK_SNOOZE": (1, 30),
}


def parse_setting_value(key: str, raw: Any):
    """
    Разобрать значение настройки, присланное пользователем

    Raises:
        ValueError: неизвестный ключ, не число или значение вне диапазона
    """
    if key not in SETTING_RANGES:
        raise ValueError(f"Неизвестная настройка: {key}")
    default = SettingsProvider.DEFAULT_SETTINGS[key]
    try:
        value = float(raw) if isinstance(default, float) else int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{key}: нужно число") from None
    low, high = SETTING_RANGES[key]
    if not low <= value <= high:
        raise ValueError(f"{key}: допустимо от {low} до {high}")
    return value


class SettingsProvider:
    """
    Источник настроек: переопределения из чата поверх переменных окружения.

    Значения читаются при каждом обращении, поэтому изменения подхватываются
    на следующем цикле планировщика. Отсутствующее, нулевое или нечитаемое
    значение заменяется значением по умолчанию.
    """

    DEFAULT_SETTINGS: Dict[str, Any] = {
        "WORKING_HOURS_START": 9,
        "WORKING_HOURS_END": 17,
        "AVERAGE_PROMPTS_PER_DAY": 3.0,
        "POMODORO_WORK_DURATION": 25,
        "POMODORO_SHORT_BREAK": 5,
        "POMODORO_LONG_BREAK": 15,
        "POMODORO_SNOOZE": 30,
        "POMODORO_BREAK_SNOOZE": 5,
    }

    HOUR_KEYS = ("WORKING_HOURS_START", "WORKING_HOURS_END")

    def __init__(self, source: Optional[Mapping[str, Any]] = None):
        """
        Args:
            source: словарь с настройками (по умолчанию os.environ)
        """
        self.source = source if source is not None else os.environ
        self._overrides: Dict[str, Any] = {}

    def get(self, key: str) -> Any:
        """
        Получить значение настройки с учётом значения по умолчанию

        Raises:
            KeyError: неизвестный ключ
        """
        default = self.DEFAULT_SETTINGS[key]
        raw = self._overrides.get(key, self.source.get(key))
        if raw is None or raw == "":
            return default

        try:
            value = float(raw) if isinstance(default, float) else int(raw)
        except (TypeError, ValueError):
            logger.warning("Unparsable setting, using default", extra={"key": key, "value": str(raw)})
            return default

        if value == 0:
            return default
        if value < 0 or (key in self.HOUR_KEYS and value > 23):
            logger.warning("Setting out of range, using default", extra={"key": key, "value": value})
            return default
        return value

    def update(self, partial: Dict[str, Any]) -> None:
        """
        Переопределить настройки в памяти процесса

        Raises:
            ValueError: неизвестный ключ
        """
        unknown = set(partial) - set(self.DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Неизвестные настройки: {sorted(unknown)}")
        self._overrides.update(partial)
        logger.info("Settings updated", extra={"keys": sorted(partial)})

    def snapshot(self) -> Dict[str, Any]:
        return {key: self.get(key) for key in self.DEFAULT_SETTINGS}

    @property
    def overrides(self) -> Dict[str, Any]:
        return dict(self._overrides)

    # === Опросы ===

    @property
    def working_hours(self) -> Tuple[int, int]:
        """Окно [start, end). При end <= start окно пустое и внутридневных опросов нет."""
        start = self.get("WORKING_HOURS_START")
        end = self.get("WORKING_HOURS_END")
        if end <= start:
            logger.warning("Empty working hours window, intraday prompts disabled", extra={"start": start, "end": end})
        return start, end

    @property
    def working_hours_start(self) -> int:
        return self.working_hours[0]

    @property
    def working_hours_end(self) -> int:
        return self.working_hours[1]

    @property
    def average_prompts_per_day(self) -> float:
        return self.get("AVERAGE_PROMPTS_PER_DAY")

    # === Pomodoro (минуты) ===

    @property
    def work_duration(self) -> int:
        return self.get("POMODORO_WORK_DURATION")

    @property
    def short_break_duration(self) -> int:
        return self.get("POMODORO_SHORT_BREAK")

    @property
    def long_break_duration(self) -> int:
        return self.get("POMODORO_LONG_BREAK")

    @property
    def snooze_duration(self) -> int:
        return self.get("POMODORO_SNOOZE")

    @property
    def break_snooze_duration(self) -> int:
        return self.get("POMODORO_BREAK_SNOOZE")

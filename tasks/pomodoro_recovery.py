from typing import Awaitable, Callable, Optional

from services.day_boundary import DayBoundaryDetector
from services.pomodoro_engine import PomodoroEngine
from services.prompt_scheduler import PromptScheduler
from utils.logging import clear_log_context, get_logger, set_log_context

logger = get_logger(__name__)


async def recovery_pass(engine: PomodoroEngine, detector: DayBoundaryDetector) -> bool:
    """
    Единоразовая сверка при запуске: восстановить фазу из чекпоинта,
    затем проверить, не наступил ли новый день.
    Возвращает True, если было отправлено событие нового дня.
    """
    set_log_context(correlation_id="recovery-pass")
    logger.info("Starting recovery pass")

    try:
        await engine.restore_state()
        new_day = await detector.check_for_new_day()
    finally:
        clear_log_context()

    logger.info(
        "Recovery pass completed",
        extra={"phase": engine.phase.value, "new_day": new_day},
    )
    return new_day


def make_wake_handler(
    engine: PomodoroEngine,
    detector: DayBoundaryDetector,
    scheduler: Optional[PromptScheduler] = None,
) -> Callable[[], Awaitable[None]]:
    """
    Подписчик на пробуждение и начало рабочего дня: досчитать таймер,
    перевооружить планировщик опросов от текущего времени, проверить новый день.
    """

    async def on_wake() -> None:
        set_log_context(correlation_id="wake")
        try:
            await engine.reconcile()
            if scheduler is not None and scheduler.is_running:
                await scheduler.start()
            await detector.check_for_new_day()
        finally:
            clear_log_context()

    return on_wake

"""
Точка входа: опросы в течение дня и Pomodoro с доставкой в Telegram
"""
import asyncio
import logging
from typing import Optional

from aiogram import Bot, Dispatcher
from aiogram.fsm.storage.memory import MemoryStorage

from config import Config
from database.firestore_store import FirestoreStore
from database.json_store import JsonFileStore
from database.memory_store import MemoryStore
from database.settings_db import SettingsProvider
from handlers import checkin, common, pomodoro, settings as settings_handlers
from services.day_boundary import DayBoundaryDetector
from services.orchestrator import Orchestrator
from services.pomodoro_engine import PomodoroEngine
from services.prompt_scheduler import PromptScheduler
from tasks.pomodoro_recovery import make_wake_handler, recovery_pass
from utils.events import EventEmitter
from utils.firestore_client import create_firestore_client
from utils.logging import get_logger, setup_logging
from utils.notify import make_notifier
from utils.wake_signal import WakeSignalSource

logger = get_logger(__name__)


def create_store(config: Config):
    """Выбирает бэкенд хранилища; Firestore без клиента откатывается на JSON."""
    if config.storage_backend == "firestore":
        client = create_firestore_client(config.google_credentials, config.firebase_project_id)
        if client is not None:
            return FirestoreStore(client)
        logger.warning("Firestore unavailable, falling back to JSON store")
    if config.storage_backend == "memory":
        return MemoryStore()
    return JsonFileStore(config.data_dir)


async def main(config: Optional[Config] = None) -> None:
    """Основная точка входа приложения."""
    config = config or Config.from_env()
    setup_logging(config.log_level)
    logger.info("Starting DayPulse", extra={"storage": config.storage_backend})

    bot = Bot(token=config.bot_token)
    dp = Dispatcher(storage=MemoryStorage())

    store = create_store(config)
    settings = SettingsProvider()
    emitter = EventEmitter()

    engine = PomodoroEngine(store, settings, emitter)
    detector = DayBoundaryDetector(store, emitter)
    scheduler = PromptScheduler(settings, emitter)

    orchestrator = Orchestrator(
        engine=engine,
        detector=detector,
        store=store,
        settings=settings,
        notify=make_notifier(bot),
        chat_id=config.owner_chat_id,
    )
    detector.should_suppress = orchestrator.should_suppress_new_day
    orchestrator.wire(emitter)

    # 👉 Инъекция оркестратора в обработчики
    common.orchestrator = orchestrator

    wake_source = WakeSignalSource(
        poll_interval=config.wake_poll_interval,
        day_start_hour=lambda: settings.working_hours_start,
    )
    wake_source.subscribe(make_wake_handler(engine, detector, scheduler))
    shutdown_event = asyncio.Event()

    await orchestrator.restore_settings()
    await recovery_pass(engine, detector)
    await scheduler.start()
    wake_task = asyncio.create_task(wake_source.run(shutdown_event))

    dp.include_router(checkin.router)
    dp.include_router(settings_handlers.router)
    dp.include_router(pomodoro.router)

    await bot.delete_webhook(drop_pending_updates=True)
    logger.info("Bot polling started")

    try:
        # aiogram сам обрабатывает SIGINT/SIGTERM и выходит из polling
        await dp.start_polling(bot)
    finally:
        logger.info("Shutting down...")
        shutdown_event.set()
        await scheduler.stop()
        await orchestrator.shutdown()
        await engine.shutdown()
        await wake_task
        await bot.session.close()
        logger.info("Bot stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Stopped by user")

"""Главный файл бота"""
import asyncio
import logging
from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from config import settings
from database.connection import async_session_maker, create_tables, engine as db_engine
from bot.handlers import bidding
from bot.middlewares.database import DatabaseMiddleware
from services.auction import AuctionEngine
from services.events import EventBus, log_event
from services.locks import AuctionLocks
from services.scheduler import LifecycleScheduler, start_scheduler

# Настройка логирования
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Запуск бота"""
    await create_tables(db_engine)

    # Движок и планировщик делят блокировки и шину событий
    config = settings.engine_config()
    locks = AuctionLocks()
    events = EventBus()
    events.subscribe(log_event)
    engine = AuctionEngine(async_session_maker, config, events=events, locks=locks)
    scheduler = LifecycleScheduler(async_session_maker, config, locks=locks, events=events)

    # Создаем бот и диспетчер
    bot = Bot(
        token=settings.BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()

    # Регистрируем middleware
    dp.message.middleware(DatabaseMiddleware(async_session_maker, engine))

    dp.include_router(bidding.router)

    # Запускаем планировщик жизненного цикла аукционов
    scheduler_task = start_scheduler(scheduler, settings.SCHEDULER_INTERVAL_SECONDS)

    logger.info("Бот запущен")

    # Запускаем polling
    try:
        await dp.start_polling(bot)
    finally:
        scheduler_task.cancel()


if __name__ == "__main__":
    asyncio.run(main())

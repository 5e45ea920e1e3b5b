import asyncio
import logging
import sys
from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from typing import Any, Callable, Dict, Awaitable
from aiogram.types import TelegramObject

from auth import SessionRegistry, UserDirectory
from broadcast import BroadcastHub
from config import Config
from db.backends import MemoryBackend, SqliteBackend
from db.store import PersistentStore
from feed_relay import FeedRelay
from handlers.chat_handlers import chat_router
from handlers.callbacks import callbacks_router
from message_service import MessageService
from moderation import ModerationEngine


def setup_logging(config: Config):
    """Настраивает логирование на основе конфигурации"""
    if not config.logging.enabled:
        return

    # Настраиваем корневой логгер
    root_logger = logging.getLogger()
    root_logger.setLevel(config.logging.level)

    # Создаем форматтер для логов
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Добавляем вывод в консоль
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Отключенные модули пишут только предупреждения и ошибки
    module_loggers = {
        "bot": ["aiogram", "__main__", "feed_relay"],
        "handlers": ["handlers", "auth"],
        "database": ["db"],
        "moderation": ["moderation", "message_service", "broadcast"],
    }
    for module, names in module_loggers.items():
        level = config.logging.level if getattr(config.logging.modules, module) else logging.WARNING
        for name in names:
            logging.getLogger(name).setLevel(level)
    if not config.logging.messages:
        logging.getLogger("message_service").setLevel(logging.WARNING)
    if not config.logging.moderation_events:
        logging.getLogger("moderation").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info("Логирование настроено")

    # Логируем важные параметры конфигурации
    if config.logging.config:
        logger.info("Параметры конфигурации:")
        logger.info(f"message_length_limit: {config.message_length_limit}")
        logger.info(f"spam_threshold: {config.spam_threshold}")
        logger.info(f"spam_window_seconds: {config.spam_window_seconds}")
        logger.info(f"storage.backend: {config.storage.backend}")
        logger.info(f"storage.path: {config.storage.path}")
        logger.info(f"timezone: {config.timezone}")
        logger.info(f"users: {len(config.users)}")


def create_backend(config: Config):
    if config.storage.backend == "memory":
        return MemoryBackend()
    return SqliteBackend(config.storage.path)


# Middleware передает в обработчики конфигурацию и сервисы
class ContextMiddleware:
    def __init__(self, **context: Any):
        self.context = context

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        data.update(self.context)
        return await handler(event, data)


async def main():
    # Загружаем конфигурацию
    config = Config.from_json_file("config.json")

    # Настраиваем логирование
    setup_logging(config)

    logger = logging.getLogger(__name__)
    logger.info("Запуск бота...")

    # Открываем хранилище
    backend = create_backend(config)
    await backend.open()
    store = PersistentStore(backend)
    hub = BroadcastHub(store)

    moderation = ModerationEngine(
        threshold=config.spam_threshold,
        window_seconds=config.spam_window_seconds
    )
    service = MessageService(store, moderation, message_length_limit=config.message_length_limit)
    users = UserDirectory(config.users)
    sessions = SessionRegistry()

    # Создаем бота и диспетчер
    bot = Bot(
        token=config.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()

    dp.update.outer_middleware(ContextMiddleware(
        config=config,
        service=service,
        users=users,
        sessions=sessions
    ))

    # Регистрируем обработчики
    dp.include_router(chat_router)
    dp.include_router(callbacks_router)
    logger.info("Обработчики сообщений и callback-запросов зарегистрированы")

    # Подписываем пересылку ленты в Telegram
    unsubscribe = await hub.subscribe(FeedRelay(bot, sessions, config.timezone))

    # Следим за записями других процессов в то же хранилище
    watch_task = asyncio.create_task(store.watch(config.storage.watch_interval_seconds))
    logger.info("Запущено отслеживание изменений хранилища")

    try:
        # Запускаем поллинг
        logger.info("Запуск поллинга...")
        await dp.start_polling(bot)
    except Exception as e:
        logger.error(f"Ошибка при работе бота: {str(e)}")
    finally:
        logger.info("Завершение работы бота")
        watch_task.cancel()
        unsubscribe()
        hub.close()
        await backend.close()
        await bot.session.close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.info("Бот остановлен пользователем")
    except Exception as e:
        logging.error(f"Критическая ошибка: {str(e)}")
        sys.exit(1)

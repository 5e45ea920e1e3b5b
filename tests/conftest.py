import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock
from aiogram import Bot

from auth import SessionRegistry, UserDirectory
from broadcast import BroadcastHub
from config import Config
from db.backends import MemoryBackend
from db.models import User
from db.store import PersistentStore
from message_service import MessageService
from moderation import ModerationEngine


class FakeClock:
    """Управляемые часы для проверок скользящего окна"""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def test_config():
    """Фикстура с тестовой конфигурацией"""
    config_data = {
        "bot_token": "test_token",
        "message_length_limit": 500,
        "spam_threshold": 3,
        "spam_window_seconds": 10,
        "feed_size": 20,
        "timezone": "Europe/Moscow",
        "storage": {
            "backend": "memory",
            "path": "test_chat.db",
            "watch_interval_seconds": 0.1
        },
        "users": [
            {"id": 1, "username": "admin", "password": "admin123", "role": "admin", "name": "Abdur"},
            {"id": 2, "username": "user1", "password": "user123", "role": "user", "name": "Dimple"},
            {"id": 3, "username": "user2", "password": "user123", "role": "user", "name": "Paul"}
        ],
        "logging": {
            "enabled": True,
            "level": "DEBUG",
            "modules": {
                "bot": True,
                "handlers": True,
                "database": True,
                "moderation": True
            },
            "messages": True,
            "moderation_events": True,
            "config": True
        }
    }
    return Config.from_dict(config_data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin():
    return User(id=1, username="admin", name="Abdur", role="admin")


@pytest.fixture
def alice():
    return User(id=2, username="user1", name="Dimple", role="user")


@pytest.fixture
def bob():
    return User(id=3, username="user2", name="Paul", role="user")


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return PersistentStore(backend)


@pytest.fixture
def moderation(clock):
    return ModerationEngine(threshold=3, window_seconds=10, clock=clock)


@pytest.fixture
def service(store, moderation, clock):
    return MessageService(store, moderation, message_length_limit=500, clock=clock)


@pytest_asyncio.fixture
async def hub(store):
    hub = BroadcastHub(store)
    yield hub
    hub.close()


@pytest.fixture
def users(test_config):
    return UserDirectory(test_config.users)


@pytest.fixture
def sessions():
    return SessionRegistry()


@pytest.fixture(scope="function")
def mock_bot():
    """Фикстура с моком бота для тестов"""
    bot = AsyncMock(spec=Bot)
    bot.send_message = AsyncMock(return_value=MagicMock(message_id=999))
    bot.edit_message_reply_markup = AsyncMock()
    return bot


@pytest.fixture
def sqlite_path(tmp_path):
    """Путь к временной тестовой базе данных"""
    return str(tmp_path / "test_chat.db")

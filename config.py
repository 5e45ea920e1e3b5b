import json
from dataclasses import dataclass, field
from typing import Dict, List, Any

import pytz

STORAGE_BACKENDS = ("sqlite", "memory")
USER_ROLES = ("user", "admin")


@dataclass
class LoggingModules:
    bot: bool = True
    handlers: bool = True
    database: bool = True
    moderation: bool = True


@dataclass
class LoggingConfig:
    enabled: bool = True
    level: str = "INFO"
    modules: LoggingModules = field(default_factory=LoggingModules)
    messages: bool = True  # Логировать отправку/редактирование/удаление сообщений
    moderation_events: bool = True  # Логировать блокировки и срабатывания антиспама
    config: bool = True


@dataclass
class StorageConfig:
    backend: str = "sqlite"  # "sqlite" или "memory"
    path: str = "chat.db"
    watch_interval_seconds: float = 1.0  # Как часто проверять изменения из других процессов


@dataclass
class UserAccount:
    id: int
    username: str
    password: str
    role: str
    name: str


# Демо-аккаунты, если в конфиге не задано ни одного
DEFAULT_ACCOUNTS = [
    UserAccount(id=1, username="admin", password="admin123", role="admin", name="Abdur"),
    UserAccount(id=2, username="user1", password="user123", role="user", name="Dimple"),
    UserAccount(id=3, username="user2", password="user123", role="user", name="Paul"),
    UserAccount(id=4, username="user3", password="user123", role="user", name="Ayan"),
]


@dataclass
class Config:
    # Основные параметры бота
    bot_token: str

    # Параметры сообщений и антиспама
    message_length_limit: int = 500  # Максимальная длина сообщения
    spam_threshold: int = 3  # Сколько сообщений можно отправить за окно
    spam_window_seconds: float = 10.0  # Скользящее окно антиспама
    feed_size: int = 20  # Сколько последних сообщений показывать по /feed
    timezone: str = "Europe/Moscow"

    storage: StorageConfig = field(default_factory=StorageConfig)
    users: List[UserAccount] = field(default_factory=lambda: list(DEFAULT_ACCOUNTS))

    # Настройки логирования
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        if self.message_length_limit <= 0:
            raise ValueError("message_length_limit должен быть положительным")
        if self.spam_threshold < 1:
            raise ValueError("spam_threshold должен быть не меньше 1")
        if self.spam_window_seconds <= 0:
            raise ValueError("spam_window_seconds должен быть положительным")
        if self.storage.backend not in STORAGE_BACKENDS:
            raise ValueError(f"Неизвестный backend хранилища: {self.storage.backend}")
        if self.timezone not in pytz.all_timezones_set:
            raise ValueError(f"Неизвестная временная зона: {self.timezone}")

        seen_ids = set()
        for account in self.users:
            if account.role not in USER_ROLES:
                raise ValueError(f"Неизвестная роль {account.role} у пользователя {account.username}")
            if account.id in seen_ids:
                raise ValueError(f"Повторяющийся id пользователя: {account.id}")
            seen_ids.add(account.id)

    @staticmethod
    def from_json_file(path: str) -> "Config":
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Config.from_dict(data)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Config":
        if not data.get("bot_token"):
            raise ValueError("bot_token не задан")

        # Настройки хранилища
        storage_data = data.get("storage", {})
        storage = StorageConfig(
            backend=storage_data.get("backend", "sqlite"),
            path=storage_data.get("path", "chat.db"),
            watch_interval_seconds=storage_data.get("watch_interval_seconds", 1.0)
        )

        # Аккаунты пользователей; если не заданы, используем демо-аккаунты
        users = [
            UserAccount(
                id=int(u["id"]),
                username=u["username"],
                password=u["password"],
                role=u.get("role", "user"),
                name=u.get("name", u["username"])
            )
            for u in data.get("users", [])
        ]
        if not users:
            users = list(DEFAULT_ACCOUNTS)

        # Настройки логирования
        logging_data = data.get("logging", {})
        modules_data = logging_data.get("modules", {})
        logging_config = LoggingConfig(
            enabled=logging_data.get("enabled", True),
            level=logging_data.get("level", "INFO"),
            modules=LoggingModules(
                bot=modules_data.get("bot", True),
                handlers=modules_data.get("handlers", True),
                database=modules_data.get("database", True),
                moderation=modules_data.get("moderation", True)
            ),
            messages=logging_data.get("messages", True),
            moderation_events=logging_data.get("moderation_events", True),
            config=logging_data.get("config", True)
        )

        return Config(
            bot_token=data["bot_token"],

            message_length_limit=data.get("message_length_limit", 500),
            spam_threshold=data.get("spam_threshold", 3),
            spam_window_seconds=data.get("spam_window_seconds", 10.0),
            feed_size=data.get("feed_size", 20),
            timezone=data.get("timezone", "Europe/Moscow"),

            storage=storage,
            users=users,

            logging=logging_config
        )

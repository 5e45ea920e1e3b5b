import asyncio
import logging
import os
import time
from typing import Optional, Dict, Callable, Any

import aiosqlite

logger = logging.getLogger(__name__)

CREATE_TABLES_SCRIPT = """
CREATE TABLE IF NOT EXISTS records (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at INTEGER NOT NULL
);
"""


class StorageError(Exception):
    """Хранилище недоступно или данные в нём повреждены"""


async def retry_on_locked(func: Callable, *args, **kwargs) -> Any:
    """
    Повторные попытки при блокировке базы данных.
    Пытается выполнить операцию до 3 раз с интервалом 0.1 секунды.
    """
    max_attempts = 3
    delay = 0.1

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except aiosqlite.OperationalError as e:
            if "database is locked" in str(e) and attempt < max_attempts - 1:
                await asyncio.sleep(delay)
                continue
            raise
    return None


class MemoryBackend:
    """
    Хранилище в памяти процесса.
    Несколько PersistentStore могут разделять один backend: так моделируются
    несколько открытых окон одного клиента.
    """

    def __init__(self):
        self._records: Dict[str, str] = {}
        self._writes = 0
        self.available = True

    async def open(self) -> None:
        pass

    async def close(self) -> None:
        pass

    def _check_available(self):
        if not self.available:
            raise StorageError("Хранилище недоступно")

    async def get(self, key: str) -> Optional[str]:
        self._check_available()
        return self._records.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check_available()
        self._records[key] = value
        self._writes += 1

    async def data_version(self) -> int:
        self._check_available()
        return self._writes


class SqliteBackend:
    """
    Хранилище в SQLite через aiosqlite.
    Держит одно постоянное соединение: PRAGMA data_version меняется только
    при коммитах из других соединений, по нему определяются чужие записи.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        logger.info(f"Открытие базы данных {self.db_path}")

        # Убедимся, что директория существует
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

        try:
            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.execute("PRAGMA journal_mode=WAL")  # Включаем WAL режим
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.executescript(CREATE_TABLES_SCRIPT)
            await self._conn.commit()

            # Проверяем, что таблица действительно создана
            cursor = await self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='records'"
            )
            row = await cursor.fetchone()
            await cursor.close()
        except (aiosqlite.Error, OSError) as e:
            raise StorageError(f"Не удалось открыть базу данных: {e}") from e

        if row is None:
            raise StorageError("Failed to create table: records")

        logger.info("База данных инициализирована успешно")

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info(f"База данных {self.db_path} закрыта")

    def _connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageError("База данных не открыта")
        return self._conn

    async def get(self, key: str) -> Optional[str]:
        conn = self._connection()

        async def _get():
            async with conn.execute("SELECT value FROM records WHERE key = ?", (key,)) as cursor:
                row = await cursor.fetchone()
            return row[0] if row else None

        try:
            return await retry_on_locked(_get)
        except aiosqlite.Error as e:
            raise StorageError(f"Ошибка чтения ключа {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        conn = self._connection()
        now_ts = int(time.time())

        async def _set():
            await conn.execute(
                """
                INSERT INTO records (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE
                SET value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, value, now_ts)
            )
            await conn.commit()

        try:
            await retry_on_locked(_set)
        except aiosqlite.Error as e:
            raise StorageError(f"Ошибка записи ключа {key}: {e}") from e

        logger.debug(f"Записан ключ {key} ({len(value)} байт)")

    async def data_version(self) -> int:
        conn = self._connection()
        try:
            async with conn.execute("PRAGMA data_version") as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Ошибка чтения data_version: {e}") from e
        return row[0]

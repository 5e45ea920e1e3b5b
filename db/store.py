import asyncio
import inspect
import json
import logging
import uuid
from typing import List, Optional, Dict, Callable, Iterable

from db.backends import StorageError
from db.models import Message

logger = logging.getLogger(__name__)

MESSAGES_KEY = "messages"
BLOCKED_USERS_KEY = "blocked_users"

# Наблюдатель получает ключ записи; None - изменение пришло извне и могло затронуть любой ключ
StoreObserver = Callable[[Optional[str]], object]


class PersistentStore:
    """
    Две независимые записи (сообщения и заблокированные пользователи),
    хранящиеся как JSON поверх подключаемого backend.
    Каждая успешная запись уведомляет наблюдателей.
    """

    def __init__(self, backend):
        self._backend = backend
        self._observers: Dict[str, StoreObserver] = {}
        self._seen_version: Optional[int] = None

    def add_observer(self, callback: StoreObserver) -> Callable[[], None]:
        """Регистрирует наблюдателя и возвращает функцию для его удаления"""
        observer_id = uuid.uuid4().hex
        self._observers[observer_id] = callback

        def remove():
            self._observers.pop(observer_id, None)

        return remove

    async def _notify(self, key: Optional[str]) -> None:
        for callback in list(self._observers.values()):
            result = callback(key)
            if inspect.isawaitable(result):
                await result

    async def _read_list(self, key: str) -> list:
        raw = await self._backend.get(key)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Повреждены данные по ключу {key}: {e}") from e
        if not isinstance(data, list):
            raise StorageError(f"Ожидался список по ключу {key}")
        return data

    async def _write_list(self, key: str, items: list) -> None:
        await self._backend.set(key, json.dumps(items, ensure_ascii=False))
        # Собственная запись не должна считаться внешним изменением
        try:
            self._seen_version = await self._backend.data_version()
        except StorageError as e:
            # Запись уже сохранена; в худшем случае следующая проверка разошлёт лишний снимок
            logger.warning(f"Не удалось прочитать data_version после записи {key}: {str(e)}")
        await self._notify(key)

    async def read_messages(self) -> List[Message]:
        data = await self._read_list(MESSAGES_KEY)
        try:
            return [Message.from_dict(item) for item in data]
        except (KeyError, TypeError) as e:
            raise StorageError(f"Повреждена запись сообщения: {e}") from e

    async def write_messages(self, messages: Iterable[Message]) -> None:
        await self._write_list(MESSAGES_KEY, [m.to_dict() for m in messages])

    async def read_blocked(self) -> List[int]:
        return await self._read_list(BLOCKED_USERS_KEY)

    async def write_blocked(self, user_ids: Iterable[int]) -> None:
        await self._write_list(BLOCKED_USERS_KEY, list(user_ids))

    async def check_external_changes(self) -> bool:
        """
        Проверяет, писал ли кто-то другой в хранилище с момента последней проверки.
        Если писал - уведомляет наблюдателей.
        """
        version = await self._backend.data_version()
        if self._seen_version is None:
            self._seen_version = version
            return False
        if version == self._seen_version:
            return False

        self._seen_version = version
        logger.debug(f"Обнаружено внешнее изменение хранилища, data_version={version}")
        await self._notify(None)
        return True

    async def watch(self, interval_seconds: float) -> None:
        """Фоновая задача: периодически проверяет внешние изменения"""
        logger.info(f"Запуск отслеживания внешних изменений, интервал {interval_seconds} с")

        while True:
            try:
                await self.check_external_changes()
            except StorageError as e:
                logger.error(f"Ошибка при проверке изменений хранилища: {str(e)}")
            await asyncio.sleep(interval_seconds)

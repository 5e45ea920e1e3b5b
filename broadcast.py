import inspect
import logging
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from db.backends import StorageError
from db.models import Snapshot
from db.store import PersistentStore

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Snapshot], object]


class BroadcastHub:
    """
    Рассылает полный снимок ленты всем подписчикам.
    Любая запись в хранилище (сообщения или блокировки, своя или из другого
    процесса) приводит к перечитыванию обеих записей и рассылке нового снимка
    с увеличенным номером версии.

    Доставкой занимается один цикл: если запись или подписка случилась, пока
    цикл ждёт подписчика (в том числе из самого подписчика), она ставится в
    очередь и обрабатывается этим же циклом после текущей рассылки.
    Каждый подписчик получает снимки по одному и по возрастанию версий.
    """

    def __init__(self, store: PersistentStore):
        self._store = store
        self._subscribers: Dict[str, SnapshotCallback] = {}
        self._pending_initial: List[Tuple[str, SnapshotCallback]] = []
        self._publish_requested = False
        self._draining = False
        self._version = 0
        self._last_snapshot: Optional[Snapshot] = None
        self._remove_observer = store.add_observer(self._on_store_change)

    @property
    def version(self) -> int:
        return self._version

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def _read_snapshot(self, version: int) -> Snapshot:
        messages = await self._store.read_messages()
        blocked = await self._store.read_blocked()
        return Snapshot(version=version, messages=tuple(messages), blocked_users=frozenset(blocked))

    async def _deliver(self, subscriber_id: str, callback: SnapshotCallback, snapshot: Snapshot) -> None:
        try:
            result = callback(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Ошибка в подписчике {subscriber_id}: {str(e)}", exc_info=True)

    async def _drain(self) -> None:
        """Обрабатывает накопившиеся подписки и публикации, пока они есть"""
        if self._draining:
            return
        self._draining = True
        try:
            while self._pending_initial or self._publish_requested:
                if self._pending_initial:
                    subscriber_id, callback = self._pending_initial.pop(0)
                    if self._last_snapshot is None:
                        self._last_snapshot = await self._read_snapshot(self._version)
                    self._subscribers[subscriber_id] = callback
                    logger.debug(f"Новый подписчик {subscriber_id}, всего подписчиков: {len(self._subscribers)}")
                    await self._deliver(subscriber_id, callback, self._last_snapshot)
                    continue

                self._publish_requested = False
                snapshot = await self._read_snapshot(self._version + 1)
                self._version = snapshot.version
                self._last_snapshot = snapshot

                for subscriber_id, callback in list(self._subscribers.items()):
                    # Отписавшиеся во время рассылки больше ничего не получают
                    if subscriber_id in self._subscribers:
                        await self._deliver(subscriber_id, callback, snapshot)

                logger.debug(
                    f"Разослан снимок v{snapshot.version}: сообщений - {len(snapshot.messages)}, "
                    f"подписчиков - {len(self._subscribers)}"
                )
        finally:
            self._draining = False

    async def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Подписывает callback на снимки ленты и возвращает функцию отписки.
        Текущий снимок доставляется до возврата, а если подписка оформлена
        изнутри другого подписчика - сразу после текущей рассылки.
        """
        subscriber_id = uuid.uuid4().hex
        self._pending_initial.append((subscriber_id, callback))

        def unsubscribe():
            self._pending_initial[:] = [p for p in self._pending_initial if p[0] != subscriber_id]
            if self._subscribers.pop(subscriber_id, None) is not None:
                logger.debug(f"Подписчик {subscriber_id} отписан")

        await self._drain()
        return unsubscribe

    async def publish(self) -> Optional[Snapshot]:
        """
        Перечитывает хранилище и рассылает новый снимок всем текущим подписчикам.
        Вызванная во время рассылки, только ставит публикацию в очередь.
        """
        self._publish_requested = True
        await self._drain()
        return self._last_snapshot

    async def _on_store_change(self, key: Optional[str]) -> None:
        try:
            await self.publish()
        except StorageError as e:
            # Запись уже состоялась; подписчики получат снимок при следующем изменении
            logger.error(f"Не удалось перечитать хранилище после изменения {key}: {str(e)}")

    def close(self) -> None:
        self._remove_observer()
        self._subscribers.clear()
        self._pending_initial.clear()

import time
import logging
from typing import Callable, Optional, List

from data.texts import error_text
from db.backends import StorageError
from db.models import ErrorKind, Message, Result, User, generate_message_id
from db.store import PersistentStore
from moderation import ModerationEngine

logger = logging.getLogger(__name__)

MESSAGE_LENGTH_LIMIT = 500


def _fail(kind: ErrorKind) -> Result:
    return Result.fail(kind, error_text(kind))


class MessageService:
    """
    Операции над лентой: отправка, редактирование, удаление, блокировки.
    Все отказы проверяются до записи в хранилище; ни одна операция не
    пробрасывает исключения наружу, ошибки возвращаются в Result.
    """

    def __init__(
        self,
        store: PersistentStore,
        moderation: ModerationEngine,
        message_length_limit: int = MESSAGE_LENGTH_LIMIT,
        clock: Callable[[], float] = time.time
    ):
        self.store = store
        self.moderation = moderation
        self.message_length_limit = message_length_limit
        self._clock = clock

    def _validate_text(self, text: Optional[str]) -> Optional[str]:
        """Возвращает очищенный текст или None, если текст недопустим"""
        text = (text or "").strip()
        if not text or len(text) > self.message_length_limit:
            return None
        return text

    @staticmethod
    def _find(messages: List[Message], message_id: str) -> Optional[Message]:
        for message in messages:
            if message.id == message_id:
                return message
        return None

    async def send(self, current_user: Optional[User], text: str) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)

        try:
            blocked = set(await self.store.read_blocked())
            now = self._clock()
            rejection = self.moderation.check(current_user, blocked, now)
            if rejection is not None:
                return _fail(rejection)

            clean_text = self._validate_text(text)
            if clean_text is None:
                return _fail(ErrorKind.INVALID_INPUT)

            messages = await self.store.read_messages()
            existing_ids = {m.id for m in messages}
            message_id = generate_message_id(now)
            while message_id in existing_ids:
                message_id = generate_message_id(now)

            message = Message(
                id=message_id,
                user_id=current_user.id,
                username=current_user.username,
                name=current_user.name,
                role=current_user.role,
                text=clean_text,
                timestamp=now
            )
            messages.append(message)
            await self.store.write_messages(messages)
        except StorageError as e:
            logger.error(f"Ошибка при отправке сообщения пользователем {current_user.id}: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        # Журнал антиспама обновляется только после успешной записи
        if not current_user.is_admin:
            self.moderation.record_send(current_user.id, now)

        logger.info(f"Пользователь {current_user.id} отправил сообщение {message.id}")
        return Result.ok(data=message)

    async def edit(self, current_user: Optional[User], message_id: str, new_text: str) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)

        try:
            messages = await self.store.read_messages()
            message = self._find(messages, message_id)
            if message is None:
                return _fail(ErrorKind.NOT_FOUND)
            # Редактировать может только автор, у администратора нет исключения
            if message.user_id != current_user.id:
                return _fail(ErrorKind.UNAUTHORIZED)

            clean_text = self._validate_text(new_text)
            if clean_text is None:
                return _fail(ErrorKind.INVALID_INPUT)

            message.text = clean_text
            message.edited_at = self._clock()
            await self.store.write_messages(messages)
        except StorageError as e:
            logger.error(f"Ошибка при редактировании сообщения {message_id}: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        logger.info(f"Пользователь {current_user.id} отредактировал сообщение {message_id}")
        return Result.ok(data=message)

    async def delete_own(self, current_user: Optional[User], message_id: str) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)

        try:
            messages = await self.store.read_messages()
            message = self._find(messages, message_id)
            if message is None:
                return _fail(ErrorKind.NOT_FOUND)
            if message.user_id != current_user.id:
                return _fail(ErrorKind.UNAUTHORIZED)

            await self.store.write_messages([m for m in messages if m.id != message_id])
        except StorageError as e:
            logger.error(f"Ошибка при удалении сообщения {message_id}: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        logger.info(f"Пользователь {current_user.id} удалил своё сообщение {message_id}")
        return Result.ok()

    async def delete_any(self, current_user: Optional[User], message_id: str) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)
        if not current_user.is_admin:
            return _fail(ErrorKind.UNAUTHORIZED)

        try:
            messages = await self.store.read_messages()
            if self._find(messages, message_id) is None:
                return _fail(ErrorKind.NOT_FOUND)

            await self.store.write_messages([m for m in messages if m.id != message_id])
        except StorageError as e:
            logger.error(f"Ошибка при удалении сообщения {message_id} администратором: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        logger.info(f"Администратор {current_user.id} удалил сообщение {message_id}")
        return Result.ok()

    async def delete_all(self, current_user: Optional[User]) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)
        if not current_user.is_admin:
            return _fail(ErrorKind.UNAUTHORIZED)

        try:
            await self.store.write_messages([])
        except StorageError as e:
            logger.error(f"Ошибка при очистке ленты: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        logger.info(f"Администратор {current_user.id} очистил ленту")
        return Result.ok()

    async def set_blocked(self, current_user: Optional[User], user_id: int, blocked: bool) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)
        if not current_user.is_admin:
            return _fail(ErrorKind.UNAUTHORIZED)

        try:
            blocked_users = await self.store.read_blocked()
            if blocked and user_id not in blocked_users:
                await self.store.write_blocked(blocked_users + [user_id])
            elif not blocked and user_id in blocked_users:
                await self.store.write_blocked([uid for uid in blocked_users if uid != user_id])
        except StorageError as e:
            logger.error(f"Ошибка при изменении блокировки пользователя {user_id}: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)

        action = "заблокировал" if blocked else "разблокировал"
        logger.info(f"Администратор {current_user.id} {action} пользователя {user_id}")
        return Result.ok()

    async def block_user(self, current_user: Optional[User], user_id: int) -> Result:
        return await self.set_blocked(current_user, user_id, True)

    async def unblock_user(self, current_user: Optional[User], user_id: int) -> Result:
        return await self.set_blocked(current_user, user_id, False)

    async def is_user_blocked(self, user_id: int) -> Result:
        """Result.data - True, если пользователь заблокирован"""
        try:
            blocked_users = await self.store.read_blocked()
        except StorageError as e:
            logger.error(f"Ошибка при чтении списка блокировок: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)
        return Result.ok(data=user_id in blocked_users)

    async def get_messages(self) -> Result:
        """Result.data - список сообщений ленты"""
        try:
            messages = await self.store.read_messages()
        except StorageError as e:
            logger.error(f"Ошибка при чтении ленты: {str(e)}")
            return _fail(ErrorKind.STORAGE_FAILURE)
        return Result.ok(data=messages)

    async def get_spam_stats(self, current_user: Optional[User]) -> Result:
        if current_user is None:
            return _fail(ErrorKind.UNAUTHENTICATED)
        if not current_user.is_admin:
            return _fail(ErrorKind.UNAUTHORIZED)
        return Result.ok(data=self.moderation.get_stats(self._clock()))

import logging
from typing import Dict, List, Optional

from config import UserAccount
from db.models import ErrorKind, Result, User
from data.texts import TEXTS

logger = logging.getLogger(__name__)


class UserDirectory:
    """Справочник демо-аккаунтов из конфигурации"""

    def __init__(self, accounts: List[UserAccount]):
        self._accounts: Dict[str, UserAccount] = {a.username: a for a in accounts}
        self._by_id: Dict[int, UserAccount] = {a.id: a for a in accounts}

    @staticmethod
    def _to_user(account: UserAccount) -> User:
        # Пароль наружу не отдаём
        return User(id=account.id, username=account.username, name=account.name, role=account.role)

    def login(self, username: str, password: str) -> Result:
        account = self._accounts.get(username)
        if account is None or account.password != password:
            logger.info(f"Неудачная попытка входа под именем {username}")
            return Result.fail(ErrorKind.UNAUTHENTICATED, TEXTS["login_failed"])
        return Result.ok(data=self._to_user(account))

    def get(self, user_id: int) -> Optional[User]:
        account = self._by_id.get(user_id)
        return self._to_user(account) if account else None


class SessionRegistry:
    """Кто из пользователей вошёл в каком чате"""

    def __init__(self):
        self._sessions: Dict[int, User] = {}

    def login(self, chat_id: int, user: User) -> None:
        self._sessions[chat_id] = user
        logger.info(f"Пользователь {user.username} вошёл в чате {chat_id}")

    def logout(self, chat_id: int) -> Optional[User]:
        user = self._sessions.pop(chat_id, None)
        if user:
            logger.info(f"Пользователь {user.username} вышел из чата {chat_id}")
        return user

    def current_user(self, chat_id: int) -> Optional[User]:
        return self._sessions.get(chat_id)

    def chat_ids(self) -> List[int]:
        return list(self._sessions.keys())

import random
import string
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, Dict, Any, Tuple, FrozenSet

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_SUFFIX_LENGTH = 9


class ErrorKind(str, Enum):
    """Виды отказов операций сервиса сообщений"""
    UNAUTHENTICATED = "unauthenticated"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    INVALID_INPUT = "invalid_input"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class User:
    """Текущий пользователь, как его отдаёт провайдер аутентификации"""
    id: int
    username: str
    name: str
    role: str  # "user" или "admin"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass
class Message:
    """Модель сообщения в ленте"""
    id: str
    user_id: int
    username: str
    name: str
    role: str
    text: str
    timestamp: float  # UNIX timestamp создания
    edited_at: Optional[float] = None  # UNIX timestamp последнего редактирования

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Message":
        return Message(
            id=str(data["id"]),
            user_id=data["user_id"],
            username=data["username"],
            name=data["name"],
            role=data["role"],
            text=data["text"],
            timestamp=data["timestamp"],
            edited_at=data.get("edited_at")
        )


@dataclass(frozen=True)
class Snapshot:
    """Полное состояние ленты, которое получает каждый подписчик"""
    version: int
    messages: Tuple[Message, ...]
    blocked_users: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class SpamStats:
    """Статистика антиспама по одному пользователю"""
    recent_message_count: int
    is_near_limit: bool


@dataclass
class Result:
    """Результат операции: успех или вид ошибки с текстом для пользователя"""
    success: bool
    error: Optional[ErrorKind] = None
    message: str = ""
    data: Any = field(default=None, compare=False)

    @staticmethod
    def ok(data: Any = None, message: str = "") -> "Result":
        return Result(success=True, message=message, data=data)

    @staticmethod
    def fail(error: ErrorKind, message: str) -> "Result":
        return Result(success=False, error=error, message=message)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True}
        return {"success": False, "error": self.error.value, "message": self.message}


def generate_message_id(now: float) -> str:
    """Генерирует id вида <миллисекунды>_<9 случайных символов base36>"""
    suffix = "".join(random.choices(ID_ALPHABET, k=ID_SUFFIX_LENGTH))
    return f"{int(now * 1000)}_{suffix}"

import time
import logging
from collections import defaultdict
from typing import Dict, List, Optional, Callable, Collection

from db.models import ErrorKind, SpamStats, User

logger = logging.getLogger(__name__)

SPAM_THRESHOLD = 3  # Максимум сообщений за окно
SPAM_WINDOW_SECONDS = 10.0


class ModerationEngine:
    """
    Правила допуска отправки: проверка блокировки и антиспам по скользящему окну.
    Журнал отправок живёт только в памяти процесса.
    Администраторы проходят обе проверки без ограничений.
    """

    def __init__(
        self,
        threshold: int = SPAM_THRESHOLD,
        window_seconds: float = SPAM_WINDOW_SECONDS,
        clock: Callable[[], float] = time.time
    ):
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._clock = clock
        # user_id -> отметки времени отправок по возрастанию
        self._send_log: Dict[int, List[float]] = defaultdict(list)

    def _now(self, now: Optional[float]) -> float:
        return self._clock() if now is None else now

    def _prune(self, user_id: int, now: float) -> List[float]:
        """Отбрасывает отметки старше окна и возвращает оставшиеся"""
        recent = [t for t in self._send_log.get(user_id, []) if now - t < self.window_seconds]
        if recent:
            self._send_log[user_id] = recent
        else:
            self._send_log.pop(user_id, None)
        return recent

    def check(self, user: User, blocked_users: Collection[int], now: Optional[float] = None) -> Optional[ErrorKind]:
        """
        Проверяет, можно ли пользователю отправить сообщение.
        Возвращает None, если можно, иначе вид отказа.
        """
        if user.is_admin:
            return None

        if user.id in blocked_users:
            logger.info(f"Отправка отклонена: пользователь {user.id} заблокирован")
            return ErrorKind.BLOCKED

        recent = self._prune(user.id, self._now(now))
        if len(recent) >= self.threshold:
            logger.info(
                f"Отправка отклонена антиспамом: пользователь {user.id}, "
                f"{len(recent)} сообщений за {self.window_seconds} с"
            )
            return ErrorKind.RATE_LIMITED

        return None

    def record_send(self, user_id: int, now: Optional[float] = None) -> None:
        """Записывает успешную отправку в журнал"""
        now = self._now(now)
        self._prune(user_id, now)
        self._send_log[user_id].append(now)

    def recent_count(self, user_id: int, now: Optional[float] = None) -> int:
        now = self._now(now)
        return sum(1 for t in self._send_log.get(user_id, []) if now - t < self.window_seconds)

    def get_stats(self, now: Optional[float] = None) -> Dict[int, SpamStats]:
        """Статистика по пользователям с недавними отправками, считается при каждом вызове"""
        now = self._now(now)
        stats = {}
        for user_id in list(self._send_log.keys()):
            count = self.recent_count(user_id, now)
            if count > 0:
                stats[user_id] = SpamStats(
                    recent_message_count=count,
                    is_near_limit=count >= self.threshold - 1
                )
        return stats

    def reset(self, user_id: int) -> None:
        """Очищает журнал отправок пользователя"""
        self._send_log.pop(user_id, None)

import datetime
import logging
from typing import Optional, Set

import pytz
from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.text_decorations import html_decoration

from auth import SessionRegistry
from data.texts import TEXTS, BUTTONS
from db.models import Message, Snapshot

logger = logging.getLogger(__name__)


def format_message(message: Message, timezone: str) -> str:
    """Форматирует сообщение ленты в HTML для Telegram"""
    tz = pytz.timezone(timezone)
    dt = datetime.datetime.fromtimestamp(message.timestamp, tz)
    return TEXTS["message_line"].format(
        name=html_decoration.quote(message.name),
        admin_mark=TEXTS["admin_mark"] if message.role == "admin" else "",
        time=dt.strftime("%d/%m/%y %H:%M"),
        edited_mark=TEXTS["edited_mark"] if message.edited_at else "",
        text=html_decoration.quote(message.text),
        message_id=message.id
    )


def make_admin_inline_kb(message: Message, author_blocked: bool) -> InlineKeyboardMarkup:
    """
    Создает inline клавиатуру администратора под сообщением ленты.
    Кнопки:
      - "🗑 Удалить" (delete_message)
      - "🚫 Заблокировать автора" (block_user) или "✅ Разблокировать автора" (unblock_user)
    """
    kb = InlineKeyboardMarkup(inline_keyboard=[])

    kb.inline_keyboard.append([
        InlineKeyboardButton(
            text=BUTTONS["delete"],
            callback_data=f"delete_message:{message.id}"
        )
    ])

    if author_blocked:
        kb.inline_keyboard.append([
            InlineKeyboardButton(
                text=BUTTONS["unblock"],
                callback_data=f"unblock_user:{message.user_id}"
            )
        ])
    else:
        kb.inline_keyboard.append([
            InlineKeyboardButton(
                text=BUTTONS["block"],
                callback_data=f"block_user:{message.user_id}"
            )
        ])
    return kb


class FeedRelay:
    """
    Подписчик ленты: пересылает новые сообщения во все чаты, где кто-то вошёл.
    Первый снимок только запоминается, чтобы не пересылать историю.
    """

    def __init__(self, bot: Bot, sessions: SessionRegistry, timezone: str):
        self.bot = bot
        self.sessions = sessions
        self.timezone = timezone
        self._seen_ids: Optional[Set[str]] = None
        self.last_version = 0

    async def __call__(self, snapshot: Snapshot) -> None:
        # Снимки с версией не новее уже обработанной пропускаем
        if self._seen_ids is not None and snapshot.version <= self.last_version:
            return
        self.last_version = snapshot.version

        current_ids = {m.id for m in snapshot.messages}
        if self._seen_ids is None:
            self._seen_ids = current_ids
            return

        new_messages = [m for m in snapshot.messages if m.id not in self._seen_ids]
        self._seen_ids = current_ids
        if not new_messages:
            return

        for chat_id in self.sessions.chat_ids():
            viewer = self.sessions.current_user(chat_id)
            if viewer is None:
                continue
            for message in new_messages:
                kb = None
                if viewer.is_admin and message.user_id != viewer.id:
                    kb = make_admin_inline_kb(message, message.user_id in snapshot.blocked_users)
                try:
                    await self.bot.send_message(
                        chat_id,
                        format_message(message, self.timezone),
                        parse_mode="HTML",
                        reply_markup=kb
                    )
                except TelegramAPIError as e:
                    logger.error(f"Ошибка при пересылке сообщения {message.id} в чат {chat_id}: {str(e)}")

"""
Тесты пересылки ленты в Telegram
"""
import pytest
from unittest.mock import AsyncMock
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup

from db.models import Message
from feed_relay import FeedRelay, format_message, make_admin_inline_kb


def make_message(message_id="1700000000000_abcdefghi", user_id=2, text="hello", role="user"):
    return Message(
        id=message_id,
        user_id=user_id,
        username="user1",
        name="Dimple",
        role=role,
        text=text,
        timestamp=1_700_000_000.0
    )


def test_make_admin_inline_kb():
    """Тест создания клавиатуры администратора"""
    message = make_message()

    kb = make_admin_inline_kb(message, author_blocked=False)
    assert isinstance(kb, InlineKeyboardMarkup)
    assert len(kb.inline_keyboard) == 2
    assert kb.inline_keyboard[0][0].callback_data == f"delete_message:{message.id}"
    assert kb.inline_keyboard[1][0].callback_data == f"block_user:{message.user_id}"

    kb = make_admin_inline_kb(message, author_blocked=True)
    assert kb.inline_keyboard[1][0].callback_data == f"unblock_user:{message.user_id}"


def test_format_message_escapes_html():
    text = format_message(make_message(text="<b>bold</b>"), "Europe/Moscow")
    assert "&lt;b&gt;bold&lt;/b&gt;" in text
    # 1700000000 = 14/11/23 22:13 UTC -> 01:13 по Москве
    assert "15/11/23 01:13" in text
    assert "(ред.)" not in text


def test_format_message_marks():
    message = make_message(role="admin")
    message.edited_at = 1_700_000_100.0
    text = format_message(message, "UTC")
    assert "👮‍♂️" in text
    assert "(ред.)" in text


@pytest.mark.asyncio
async def test_relay_skips_initial_snapshot(hub, service, mock_bot, sessions, alice):
    await service.send(alice, "old")
    sessions.login(100, alice)

    await hub.subscribe(FeedRelay(mock_bot, sessions, "UTC"))
    mock_bot.send_message.assert_not_called()


@pytest.mark.asyncio
async def test_relay_sends_new_messages(hub, service, mock_bot, sessions, alice, admin):
    sessions.login(100, alice)
    sessions.login(200, admin)
    await hub.subscribe(FeedRelay(mock_bot, sessions, "UTC"))

    await service.send(alice, "hello")

    assert mock_bot.send_message.call_count == 2
    calls = {c.args[0]: c.kwargs for c in mock_bot.send_message.call_args_list}
    assert calls[100]["reply_markup"] is None
    assert isinstance(calls[200]["reply_markup"], InlineKeyboardMarkup)
    assert calls[200]["parse_mode"] == "HTML"


@pytest.mark.asyncio
async def test_relay_ignores_deletions(hub, service, mock_bot, sessions, alice, admin):
    await hub.subscribe(FeedRelay(mock_bot, sessions, "UTC"))
    sent = await service.send(alice, "hello")
    sessions.login(100, alice)

    await service.delete_any(admin, sent.data.id)
    mock_bot.send_message.assert_not_called()


@pytest.mark.asyncio
async def test_relay_survives_telegram_errors(hub, service, mock_bot, sessions, alice):
    mock_bot.send_message = AsyncMock(side_effect=TelegramAPIError(method=AsyncMock(), message="chat not found"))
    sessions.login(100, alice)
    await hub.subscribe(FeedRelay(mock_bot, sessions, "UTC"))

    result = await service.send(alice, "hello")
    assert result.success
    mock_bot.send_message.assert_called_once()

from typing import Optional

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from auth import SessionRegistry, UserDirectory
from config import Config
from data.texts import TEXTS
from db.models import Result
from feed_relay import format_message
from message_service import MessageService

chat_router = Router(name="chat_router")


async def _reply_result(message: Message, result: Result, success_text: str) -> None:
    await message.answer(success_text if result.success else result.message)


def _parse_user_id(command: CommandObject) -> Optional[int]:
    if not command.args:
        return None
    try:
        return int(command.args.strip())
    except ValueError:
        return None


@chat_router.message(Command("login"))
async def login_handler(message: Message, command: CommandObject, **data):
    users: UserDirectory = data["users"]
    sessions: SessionRegistry = data["sessions"]

    args = (command.args or "").split()
    if len(args) != 2:
        await message.answer(TEXTS["login_usage"])
        return

    result = users.login(args[0], args[1])
    if not result.success:
        await message.answer(result.message)
        return

    user = result.data
    sessions.login(message.chat.id, user)
    await message.answer(TEXTS["login_success"].format(name=user.name, role=user.role), parse_mode="HTML")


@chat_router.message(Command("logout"))
async def logout_handler(message: Message, **data):
    sessions: SessionRegistry = data["sessions"]
    sessions.logout(message.chat.id)
    await message.answer(TEXTS["logout"])


@chat_router.message(Command("feed"))
async def feed_handler(message: Message, **data):
    service: MessageService = data["service"]
    config: Config = data["config"]

    result = await service.get_messages()
    if not result.success:
        await message.answer(result.message)
        return

    messages = result.data
    if not messages:
        await message.answer(TEXTS["feed_empty"])
        return

    text = "\n\n".join(format_message(m, config.timezone) for m in messages[-config.feed_size:])
    await message.answer(text, parse_mode="HTML")


@chat_router.message(Command("edit"))
async def edit_handler(message: Message, command: CommandObject, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    parts = (command.args or "").split(maxsplit=1)
    if len(parts) != 2:
        await message.answer(TEXTS["edit_usage"])
        return

    result = await service.edit(sessions.current_user(message.chat.id), parts[0], parts[1])
    await _reply_result(message, result, TEXTS["edited"])


@chat_router.message(Command("delete"))
async def delete_handler(message: Message, command: CommandObject, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    message_id = (command.args or "").strip()
    if not message_id:
        await message.answer(TEXTS["delete_usage"])
        return

    user = sessions.current_user(message.chat.id)
    # Администратор может удалить любое сообщение, остальные - только свои
    if user is not None and user.is_admin:
        result = await service.delete_any(user, message_id)
    else:
        result = await service.delete_own(user, message_id)
    await _reply_result(message, result, TEXTS["deleted"])


@chat_router.message(Command("clear"))
async def clear_handler(message: Message, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    result = await service.delete_all(sessions.current_user(message.chat.id))
    await _reply_result(message, result, TEXTS["cleared"])


@chat_router.message(Command("block", "unblock"))
async def block_handler(message: Message, command: CommandObject, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    user_id = _parse_user_id(command)
    if user_id is None:
        await message.answer(TEXTS["block_usage"].format(command=command.command))
        return

    blocked = command.command == "block"
    result = await service.set_blocked(sessions.current_user(message.chat.id), user_id, blocked)
    success_text = TEXTS["blocked" if blocked else "unblocked"].format(user_id=user_id)
    await _reply_result(message, result, success_text)


@chat_router.message(Command("stats"))
async def stats_handler(message: Message, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    result = await service.get_spam_stats(sessions.current_user(message.chat.id))
    if not result.success:
        await message.answer(result.message)
        return
    if not result.data:
        await message.answer(TEXTS["stats_empty"])
        return

    lines = [
        TEXTS["stats_line"].format(
            user_id=user_id,
            count=stats.recent_message_count,
            near_limit=TEXTS["near_limit_mark"] if stats.is_near_limit else ""
        )
        for user_id, stats in sorted(result.data.items())
    ]
    await message.answer("\n".join(lines))


@chat_router.message(F.text & ~F.text.startswith("/"))
async def send_handler(message: Message, **data):
    service: MessageService = data["service"]
    sessions: SessionRegistry = data["sessions"]

    result = await service.send(sessions.current_user(message.chat.id), message.text)
    if not result.success:
        await message.answer(result.message)

import logging

from aiogram import Router, Bot
from aiogram.types import CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton

from auth import SessionRegistry
from data.texts import TEXTS, BUTTONS
from db.models import Result
from message_service import MessageService

logger = logging.getLogger(__name__)

callbacks_router = Router(name="callbacks_router")


async def _mark_done(call: CallbackQuery, bot: Bot, prefix: str) -> None:
    """Меняет нажатую кнопку на "✅ Выполнено" """
    if not (call.message and call.message.reply_markup):
        return

    new_keyboard = []
    for row in call.message.reply_markup.inline_keyboard:
        new_row = []
        for button in row:
            if button.callback_data and button.callback_data.startswith(prefix):
                new_row.append(InlineKeyboardButton(text=BUTTONS["done"], callback_data="done"))
            else:
                new_row.append(button)
        new_keyboard.append(new_row)

    await bot.edit_message_reply_markup(
        chat_id=call.message.chat.id,
        message_id=call.message.message_id,
        reply_markup=InlineKeyboardMarkup(inline_keyboard=new_keyboard)
    )


async def _finish(call: CallbackQuery, bot: Bot, prefix: str, result: Result, success_text: str) -> None:
    if result.success:
        await _mark_done(call, bot, prefix)
        await call.answer(success_text, show_alert=True)
    else:
        await call.answer(result.message, show_alert=True)


@callbacks_router.callback_query(lambda call: call.data and call.data.startswith("delete_message:"))
async def delete_message_handler(call: CallbackQuery, bot: Bot, service: MessageService, sessions: SessionRegistry):
    parts = call.data.split(":", 1)
    if len(parts) < 2:
        return
    message_id = parts[1]

    user = sessions.current_user(call.message.chat.id)
    result = await service.delete_any(user, message_id)
    await _finish(call, bot, "delete_message:", result, TEXTS["deleted"])


@callbacks_router.callback_query(lambda call: call.data and call.data.startswith(("block_user:", "unblock_user:")))
async def block_user_handler(call: CallbackQuery, bot: Bot, service: MessageService, sessions: SessionRegistry):
    action, _, raw_user_id = call.data.partition(":")
    try:
        user_id = int(raw_user_id)
    except ValueError:
        return

    blocked = action == "block_user"
    user = sessions.current_user(call.message.chat.id)
    result = await service.set_blocked(user, user_id, blocked)
    success_text = TEXTS["blocked" if blocked else "unblocked"].format(user_id=user_id)
    await _finish(call, bot, f"{action}:", result, success_text)

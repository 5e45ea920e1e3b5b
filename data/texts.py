"""
Тексты ответов пользователям и описания ошибок
"""
from db.models import ErrorKind

ERROR_TEXTS = {
    ErrorKind.UNAUTHENTICATED: "Сначала войдите: /login <логин> <пароль>",
    ErrorKind.UNAUTHORIZED: "Недостаточно прав для этого действия",
    ErrorKind.NOT_FOUND: "Сообщение не найдено",
    ErrorKind.BLOCKED: "Вы заблокированы администратором",
    ErrorKind.RATE_LIMITED: "Помедленнее! Вы отправляете сообщения слишком часто.",
    ErrorKind.INVALID_INPUT: "Сообщение пустое или слишком длинное",
    ErrorKind.STORAGE_FAILURE: "Не удалось сохранить изменения, попробуйте позже",
}

TEXTS = {
    "login_usage": "Использование: /login <логин> <пароль>",
    "login_failed": "Неверный логин или пароль",
    "login_success": "Добро пожаловать, <b>{name}</b>! Роль: {role}",
    "logout": "Вы вышли из чата",
    "edit_usage": "Использование: /edit <id> <новый текст>",
    "delete_usage": "Использование: /delete <id>",
    "block_usage": "Использование: /{command} <id пользователя>",
    "edited": "Сообщение отредактировано",
    "deleted": "Сообщение удалено",
    "cleared": "Все сообщения удалены",
    "blocked": "Пользователь {user_id} заблокирован",
    "unblocked": "Пользователь {user_id} разблокирован",
    "feed_empty": "Сообщений пока нет",
    "stats_empty": "Недавних отправок нет",
    "stats_line": "{user_id}: {count} за окно{near_limit}",
    "near_limit_mark": " ⚠️ близко к лимиту",
    "message_line": "<b>{name}</b>{admin_mark} <i>{time}</i>{edited_mark}\n{text}\n<code>{message_id}</code>",
    "admin_mark": " 👮‍♂️",
    "edited_mark": " (ред.)",
}

# Подписи кнопок администратора под сообщениями ленты
BUTTONS = {
    "delete": "🗑 Удалить",
    "block": "🚫 Заблокировать автора",
    "unblock": "✅ Разблокировать автора",
    "done": "✅ Выполнено",
}


def error_text(kind: ErrorKind) -> str:
    return ERROR_TEXTS.get(kind, kind.value)

"""
Реализации уведомлений: лог и Telegram
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from aiogram import Bot
from aiogram.exceptions import (
    TelegramAPIError,
    TelegramNetworkError,
    TelegramRetryAfter,
    TelegramServerError,
)

from helpme.core.config import Messages
from helpme.domain.exceptions import ExternalCollaboratorError


logger = logging.getLogger(__name__)

# Ошибки Telegram, которые имеет смысл повторять
RETRYABLE_TELEGRAM_ERRORS = (
    TelegramNetworkError,  # Сетевые ошибки
    TelegramServerError,  # Ошибки сервера Telegram (5xx)
    TelegramRetryAfter,  # Превышен лимит запросов (429)
)


class LoggingNotifier:
    """Уведомления в лог (локальный запуск)"""

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        logger.info(
            "Уведомление участнику %s [%s]: %s",
            user_id,
            event_type,
            Messages.render(event_type, payload),
        )


class NotifierError(ExternalCollaboratorError):
    """Ошибка доставки уведомления с подсказкой flood control"""

    def __init__(self, message: str, retryable: bool, retry_after: int | None = None):
        self.retry_after = retry_after
        super().__init__("notifier", message, retryable=retryable)


class TelegramNotifier:
    """
    Уведомления через Telegram бота

    Чат участника определяется через chat_resolver (обычно по таблице users).
    """

    def __init__(self, bot: Bot, chat_resolver: Callable[[int], Awaitable[int | None]]):
        """
        Args:
            bot: Экземпляр aiogram бота
            chat_resolver: async функция user_id -> chat_id
        """
        self.bot = bot
        self.chat_resolver = chat_resolver

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        chat_id = await self.chat_resolver(user_id)
        if chat_id is None:
            logger.info("У участника %s нет Telegram чата, уведомление %s пропущено", user_id, event_type)
            return

        text = Messages.render(event_type, payload)
        try:
            await self.bot.send_message(chat_id, text)
        except TelegramRetryAfter as e:
            raise NotifierError(str(e), retryable=True, retry_after=e.retry_after) from e
        except RETRYABLE_TELEGRAM_ERRORS as e:
            raise NotifierError(f"{type(e).__name__}: {e}", retryable=True) from e
        except TelegramAPIError as e:
            # Бот заблокирован, чат не найден и т.п. - повтор не поможет
            raise NotifierError(f"{type(e).__name__}: {e}", retryable=False) from e

        logger.debug("Уведомление %s отправлено участнику %s", event_type, user_id)

"""
Retry механизм для вызовов внешних сервисов с экспоненциальным backoff
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from helpme.domain.exceptions import ExternalCollaboratorError


logger = logging.getLogger(__name__)

T = TypeVar("T")


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ExternalCollaboratorError):
        return exc.retryable
    return isinstance(exc, (asyncio.TimeoutError, ConnectionError))


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
) -> float:
    """Задержка перед попыткой attempt+1 (attempt начинается с 1)"""
    return min(base_delay * (exponential_base ** (attempt - 1)), max_delay)


def retry_async(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    timeout: float | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Декоратор для повтора асинхронных вызовов с экспоненциальным backoff

    Повторяются таймауты, ConnectionError и ExternalCollaboratorError с retryable=True.
    Если у исключения есть атрибут retry_after (flood control), ждём указанное время.
    После исчерпания попыток пробрасывается последнее исключение.

    Args:
        max_attempts: Максимальное количество попыток
        base_delay: Базовая задержка между попытками (секунды)
        max_delay: Максимальная задержка между попытками (секунды)
        exponential_base: База для экспоненциального роста задержки
        timeout: Таймаут одной попытки (секунды)

    Returns:
        Декоратор функции

    Example:
        @retry_async(max_attempts=5, timeout=10)
        async def capture(order_id, amount):
            return await gateway.capture(order_id, amount)
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, max_attempts + 1):
                try:
                    if timeout is not None:
                        return await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
                    return await func(*args, **kwargs)

                except Exception as e:
                    if not _is_retryable(e):
                        logger.error(
                            "%s: ошибка без повтора %s: %s",
                            func.__name__,
                            type(e).__name__,
                            e,
                        )
                        raise

                    if attempt >= max_attempts:
                        logger.error(
                            "%s: все %d попыток неудачны, последняя ошибка: %s",
                            func.__name__,
                            max_attempts,
                            e,
                        )
                        raise

                    retry_after = getattr(e, "retry_after", None)
                    if retry_after:
                        delay = min(float(retry_after), max_delay)
                    else:
                        delay = compute_delay(attempt, base_delay, max_delay, exponential_base)

                    logger.warning(
                        "%s: %s, попытка %d/%d, повтор через %.2f с: %s",
                        func.__name__,
                        type(e).__name__,
                        attempt,
                        max_attempts,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("unreachable")

        return wrapper

    return decorator

"""
Ограничение частоты запросов (Rate Limiting)

Счётчик в окне фиксированной длины для пары (политика, идентификатор).
Проверка неблокирующая: запрос либо проходит, либо получает время ожидания.
"""

import logging
import math
from dataclasses import dataclass

from helpme.utils.ttl_store import TTLStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    """Бюджет запросов: max_requests за window_seconds"""

    name: str
    max_requests: int
    window_seconds: int
    message: str = "Слишком много запросов, попробуйте позже"


@dataclass(frozen=True)
class RateLimitResult:
    """Результат проверки лимита"""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int  # Секунд до сброса окна (0 если запрос разрешён)
    reset_in: int


# Предустановленные политики
LOGIN = RateLimitPolicy("login", 10, 60, "Слишком много попыток входа. Повторите через минуту")
SIGNUP = RateLimitPolicy("signup", 5, 3600, "Слишком много регистраций. Повторите через час")
PASSWORD_RESET = RateLimitPolicy(
    "password_reset", 3, 3600, "Слишком много запросов сброса пароля. Повторите через час"
)
UPLOAD = RateLimitPolicy("upload", 30, 60, "Слишком много загрузок файлов. Повторите через минуту")
PUSH = RateLimitPolicy("push", 20, 60, "Слишком много push-запросов. Повторите через минуту")
API = RateLimitPolicy("api", 100, 60, "Слишком много запросов к API. Повторите через минуту")
STRICT = RateLimitPolicy("strict", 5, 60)

PRESETS: dict[str, RateLimitPolicy] = {
    policy.name: policy for policy in (LOGIN, SIGNUP, PASSWORD_RESET, UPLOAD, PUSH, API, STRICT)
}


class RateLimiter:
    """
    Rate limiter поверх TTLStore

    Окно начинается с первого запроса и живёт window_seconds;
    счётчик хранится как запись TTLStore с тем же сроком.
    """

    def __init__(self, store: TTLStore | None = None, enabled: bool = True):
        self.store = store or TTLStore()
        self.enabled = enabled

    @staticmethod
    def _key(policy: RateLimitPolicy, identity: str) -> str:
        return f"rate:{policy.name}:{identity}"

    def check_and_increment(self, policy: RateLimitPolicy, identity: str) -> RateLimitResult:
        """
        Проверка лимита с учётом текущего запроса

        Args:
            policy: Политика
            identity: Идентификатор вызывающего (ID участника или IP)

        Returns:
            RateLimitResult
        """
        if not self.enabled:
            return RateLimitResult(True, policy.max_requests, policy.max_requests, 0, 0)

        key = self._key(policy, identity)
        count = self.store.get(key)

        if count is None:
            self.store.set(key, 1, policy.window_seconds)
            return RateLimitResult(
                True,
                policy.max_requests,
                policy.max_requests - 1,
                0,
                policy.window_seconds,
            )

        reset_in = max(1, math.ceil(self.store.expires_at(key) - self.store.now()))
        if count >= policy.max_requests:
            logger.warning(
                f"Rate limit '{policy.name}' превышен для {identity}, повтор через {reset_in} сек"
            )
            return RateLimitResult(False, policy.max_requests, 0, reset_in, reset_in)

        self.store.replace(key, count + 1)
        return RateLimitResult(
            True, policy.max_requests, policy.max_requests - count - 1, 0, reset_in
        )

    def reset(self, policy: RateLimitPolicy, identity: str) -> None:
        self.store.pop(self._key(policy, identity))

    def purge_expired(self) -> int:
        return self.store.purge_expired()

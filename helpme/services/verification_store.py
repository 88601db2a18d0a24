"""
Коды подтверждения (SMS-верификация, сброс пароля)
"""

import logging
import secrets
from dataclasses import dataclass

from helpme.core.config import Config
from helpme.utils.helpers import mask_phone
from helpme.utils.ttl_store import TTLStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PendingCode:
    code: str
    attempts: int


class VerificationStore:
    """
    Хранилище одноразовых кодов с TTL и ограничением попыток

    Код удаляется после успешной проверки или исчерпания попыток.
    """

    def __init__(
        self,
        store: TTLStore | None = None,
        ttl: int | None = None,
        max_attempts: int | None = None,
        code_length: int = 6,
    ):
        self.store = store or TTLStore()
        self.ttl = ttl or Config.VERIFICATION_CODE_TTL
        self.max_attempts = max_attempts or Config.VERIFICATION_MAX_ATTEMPTS
        self.code_length = code_length

    @staticmethod
    def _key(purpose: str, phone: str) -> str:
        return f"verify:{purpose}:{phone}"

    def issue(self, phone: str, purpose: str = "phone") -> str:
        """
        Выдача нового кода (предыдущий код для номера аннулируется)

        Args:
            phone: Номер телефона
            purpose: Назначение кода (phone, password_reset)

        Returns:
            Сгенерированный код
        """
        code = "".join(secrets.choice("0123456789") for _ in range(self.code_length))
        self.store.set(self._key(purpose, phone), _PendingCode(code, 0), self.ttl)
        logger.info("Код подтверждения (%s) выдан для %s", purpose, mask_phone(phone))
        return code

    def verify(self, phone: str, code: str, purpose: str = "phone") -> bool:
        """
        Проверка кода

        Returns:
            True если код верный (код при этом погашается)
        """
        key = self._key(purpose, phone)
        pending = self.store.get(key)
        if pending is None:
            logger.info("Код (%s) для %s не найден или истёк", purpose, mask_phone(phone))
            return False

        if secrets.compare_digest(pending.code, code):
            self.store.pop(key)
            return True

        attempts = pending.attempts + 1
        if attempts >= self.max_attempts:
            self.store.pop(key)
            logger.warning(
                "Код (%s) для %s аннулирован после %s неверных попыток",
                purpose,
                mask_phone(phone),
                attempts,
            )
        else:
            self.store.replace(key, _PendingCode(pending.code, attempts))
        return False

    def purge_expired(self) -> int:
        return self.store.purge_expired()

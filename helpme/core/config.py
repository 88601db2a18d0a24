"""
Конфигурация приложения

Значения читаются из переменных окружения (файл .env подхватывается через python-dotenv).
"""

import os
from decimal import Decimal

from dotenv import load_dotenv


load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _get_optional_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return int(value)


def _get_decimal(name: str, default: str) -> Decimal:
    return Decimal(os.getenv(name, default))


def _get_int_list(name: str) -> list[int]:
    raw = os.getenv(name, "")
    return [int(item) for item in raw.split(",") if item.strip()]


# Ограничения длины текстовых полей
MAX_MEMO_LENGTH = 2000
MAX_REASON_LENGTH = 500
MAX_EVIDENCE_KEYS = 20
MAX_EXTRA_COST_ITEMS = 20


class Config:
    """Конфигурация приложения"""

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # База данных
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "helpme.db")
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")

    # Логирование
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOGS_DIR: str = os.getenv("LOGS_DIR", "logs")

    # HTTP сервер
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = _get_int("API_PORT", 8000)

    # Администраторы, получающие уведомления о сбоях интеграций
    ADMIN_IDS: list[int] = _get_int_list("ADMIN_IDS")

    # Политика расчётов (значения по умолчанию для новых заявок)
    VAT_RATE_PERCENT: Decimal = _get_decimal("VAT_RATE_PERCENT", "10")
    PLATFORM_FEE_RATE_PERCENT: Decimal = _get_decimal("PLATFORM_FEE_RATE_PERCENT", "10")
    PLATFORM_FEE_MIN: int | None = _get_optional_int("PLATFORM_FEE_MIN")
    PLATFORM_FEE_MAX: int | None = _get_optional_int("PLATFORM_FEE_MAX")
    DEPOSIT_RATE_PERCENT: Decimal = _get_decimal("DEPOSIT_RATE_PERCENT", "20")
    URGENT_FEE_PERCENT: Decimal = _get_decimal("URGENT_FEE_PERCENT", "20")
    URGENT_FEE_MAX: int | None = _get_optional_int("URGENT_FEE_MAX")
    OTHER_UNIT_PRICE: int = _get_int("OTHER_UNIT_PRICE", 1800)
    MIN_CHARGE_SUPPLY: int = _get_int("MIN_CHARGE_SUPPLY", 0)
    COLD_CHAIN_MIN_CHARGE_SUPPLY: int = _get_int("COLD_CHAIN_MIN_CHARGE_SUPPLY", 0)

    # Подбор исполнителя
    MAX_APPLICANTS: int = _get_int("MAX_APPLICANTS", 3)

    # Отмена после выбора исполнителя (по умолчанию запрещена)
    ALLOW_POST_SELECTION_CANCEL: bool = _get_bool("ALLOW_POST_SELECTION_CANCEL", False)
    POST_SELECTION_REFUND_PERCENT: Decimal = _get_decimal("POST_SELECTION_REFUND_PERCENT", "50")

    # Внешние интеграции
    INTEGRATION_TIMEOUT: float = float(os.getenv("INTEGRATION_TIMEOUT", "10"))
    INTEGRATION_MAX_ATTEMPTS: int = _get_int("INTEGRATION_MAX_ATTEMPTS", 3)
    INTEGRATION_BASE_DELAY: float = float(os.getenv("INTEGRATION_BASE_DELAY", "1"))
    INTEGRATION_MAX_RETRIES: int = _get_int("INTEGRATION_MAX_RETRIES", 3)
    INTEGRATION_RETRY_BASE_MINUTES: int = _get_int("INTEGRATION_RETRY_BASE_MINUTES", 1)
    INTEGRATION_RETRY_INTERVAL: int = _get_int("INTEGRATION_RETRY_INTERVAL", 60)
    INTEGRATION_HANDLER_ATTEMPTS: int = _get_int("INTEGRATION_HANDLER_ATTEMPTS", 3)
    # pending задача старше этого срока подбирается планировщиком
    INTEGRATION_PENDING_GRACE_SECONDS: int = _get_int("INTEGRATION_PENDING_GRACE_SECONDS", 300)

    NOTIFIER_BACKEND: str = os.getenv("NOTIFIER_BACKEND", "log")  # log | telegram
    BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")

    PAYMENT_GATEWAY_BACKEND: str = os.getenv("PAYMENT_GATEWAY_BACKEND", "memory")  # memory | http
    PAYMENT_GATEWAY_URL: str = os.getenv("PAYMENT_GATEWAY_URL", "")
    PAYMENT_GATEWAY_API_KEY: str = os.getenv("PAYMENT_GATEWAY_API_KEY", "")

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = _get_bool("RATE_LIMIT_ENABLED", True)

    # Коды подтверждения
    VERIFICATION_CODE_TTL: int = _get_int("VERIFICATION_CODE_TTL", 180)
    VERIFICATION_MAX_ATTEMPTS: int = _get_int("VERIFICATION_MAX_ATTEMPTS", 5)

    @classmethod
    def validate(cls) -> None:
        """
        Проверка корректности конфигурации

        Raises:
            ValueError: Если конфигурация некорректна
        """
        for name in (
            "VAT_RATE_PERCENT",
            "PLATFORM_FEE_RATE_PERCENT",
            "DEPOSIT_RATE_PERCENT",
            "URGENT_FEE_PERCENT",
            "POST_SELECTION_REFUND_PERCENT",
        ):
            value = getattr(cls, name)
            if value < 0 or value > 100:
                raise ValueError(f"{name} должен быть в диапазоне 0..100, получено {value}")

        if cls.MAX_APPLICANTS < 1:
            raise ValueError("MAX_APPLICANTS должен быть не меньше 1")

        if cls.NOTIFIER_BACKEND not in ("log", "telegram"):
            raise ValueError(f"Неизвестный NOTIFIER_BACKEND: {cls.NOTIFIER_BACKEND}")
        if cls.NOTIFIER_BACKEND == "telegram" and not cls.BOT_TOKEN:
            raise ValueError("BOT_TOKEN не установлен для NOTIFIER_BACKEND=telegram")

        if cls.PAYMENT_GATEWAY_BACKEND not in ("memory", "http"):
            raise ValueError(f"Неизвестный PAYMENT_GATEWAY_BACKEND: {cls.PAYMENT_GATEWAY_BACKEND}")
        if cls.PAYMENT_GATEWAY_BACKEND == "http" and not cls.PAYMENT_GATEWAY_URL:
            raise ValueError("PAYMENT_GATEWAY_URL не установлен для PAYMENT_GATEWAY_BACKEND=http")


class _MissingAsPlaceholder(dict):
    def __missing__(self, key: str) -> str:
        return "?"


class Messages:
    """Тексты сообщений для участников"""

    ORDER_OPENED = "Заявка #{order_id} опубликована, исполнители могут откликаться"
    NEW_APPLICATION = "На заявку #{order_id} откликнулся исполнитель"
    HELPER_SELECTED = "Вы выбраны исполнителем заявки #{order_id}"
    APPLICATION_REJECTED = "По заявке #{order_id} выбран другой исполнитель"
    HELPER_CHECKED_IN = "Исполнитель прибыл на место по заявке #{order_id}"
    CLOSING_SUBMITTED = "Исполнитель отправил отчёт о закрытии заявки #{order_id}"
    CLOSING_APPROVED = "Отчёт по заявке #{order_id} подтверждён"
    CLOSING_REJECTED = "Отчёт по заявке #{order_id} отклонён: {reason}"
    ORDER_CANCELLED = "Заявка #{order_id} отменена"
    SETTLEMENT_HELD = "Расчёт по заявке #{order_id} заморожен: {reason}"
    SETTLEMENT_PAID = "Выплата по заявке #{order_id} проведена: {amount} ₩"
    INCIDENT_REPORTED = "По заявке #{order_id} зарегистрирован инцидент с грузом"
    INTEGRATION_FAILED = "Не удалось выполнить задачу интеграции #{event_id} ({action}): {error}"

    TEMPLATES = {
        "order_opened": ORDER_OPENED,
        "new_application": NEW_APPLICATION,
        "helper_selected": HELPER_SELECTED,
        "application_rejected": APPLICATION_REJECTED,
        "helper_checked_in": HELPER_CHECKED_IN,
        "closing_submitted": CLOSING_SUBMITTED,
        "closing_approved": CLOSING_APPROVED,
        "closing_rejected": CLOSING_REJECTED,
        "order_cancelled": ORDER_CANCELLED,
        "settlement_held": SETTLEMENT_HELD,
        "settlement_paid": SETTLEMENT_PAID,
        "incident_reported": INCIDENT_REPORTED,
        "integration_failed": "{text}",
    }

    @classmethod
    def render(cls, event_type: str, payload: dict) -> str:
        """Текст уведомления для события"""
        template = cls.TEMPLATES.get(event_type)
        if template is None:
            return f"{event_type}: {payload}"
        return template.format_map(_MissingAsPlaceholder(payload))

"""
Опциональная интеграция Sentry для error tracking
"""

import logging
import os


logger = logging.getLogger(__name__)


def init_sentry() -> str | None:
    """
    Инициализация Sentry (опционально, extra [monitoring])

    Returns:
        Sentry DSN если успешно, None если Sentry не настроен
    """
    sentry_dsn = os.getenv("SENTRY_DSN")
    environment = os.getenv("ENVIRONMENT", "development")

    if not sentry_dsn:
        logger.info("Sentry DSN не настроен, error tracking отключен")
        return None

    try:
        import sentry_sdk
        from sentry_sdk.integrations.logging import LoggingIntegration
    except ImportError:
        logger.warning(
            "Sentry SDK не установлен. Установите: pip install -e .[monitoring]"
        )
        return None

    sentry_sdk.init(
        dsn=sentry_dsn,
        environment=environment,
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        # Суммы и телефоны участников не отправляем
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )

    logger.info(f"Sentry инициализирован (environment: {environment})")
    return sentry_dsn


def capture_unexpected_error(error: Exception, **context) -> None:
    """Отправка неожиданной ошибки в Sentry с контекстом (если Sentry подключен)"""
    try:
        import sentry_sdk
    except ImportError:
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in context.items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(error)

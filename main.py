"""
Запуск HTTP сервиса жизненного цикла заявок HelpMe
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import uvicorn

from helpme.api import create_app
from helpme.core.config import Config
from helpme.utils.sentry import init_sentry


"""
Настройка логирования:
- Пишем в LOGS_DIR/helpme.log с ротацией
- Если нет прав на запись (напр., bind mount в Docker), остаёмся только с консолью
"""

log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setFormatter(log_formatter)
if hasattr(console_handler.stream, "reconfigure"):
    console_handler.stream.reconfigure(encoding="utf-8")

handlers: list[logging.Handler] = [console_handler]

log_file_path = Path(Config.LOGS_DIR) / "helpme.log"
try:
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        str(log_file_path),
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setFormatter(log_formatter)
    handlers.insert(0, file_handler)
except (PermissionError, OSError) as e:
    sys.stderr.write(f"[logging] WARNING: cannot use file logging at {log_file_path}: {e}\n")

log_level = getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO)
logging.basicConfig(level=log_level, handlers=handlers)

logger = logging.getLogger(__name__)

if log_level == logging.DEBUG:
    logging.getLogger("helpme").setLevel(logging.DEBUG)
    logging.getLogger("aiogram").setLevel(logging.INFO)
    logging.getLogger("apscheduler").setLevel(logging.INFO)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.INFO)
    logger.info("DEBUG режим включен (LOG_LEVEL=DEBUG)")
else:
    logging.getLogger("helpme").setLevel(log_level)
    logging.getLogger("aiogram").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main():
    """Основная функция запуска сервиса"""
    init_sentry()

    try:
        Config.validate()
    except ValueError as e:
        logger.error("Ошибка конфигурации: %s", e)
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Запуск HelpMe lifecycle engine")
    logger.info(f"   ENVIRONMENT: {Config.ENVIRONMENT}")
    logger.info(f"   DATABASE: {Config.DATABASE_URL or Config.DATABASE_PATH}")
    logger.info(f"   HTTP: {Config.API_HOST}:{Config.API_PORT}")
    logger.info("=" * 60)

    app = create_app()
    # log_config=None: uvicorn пишет через уже настроенный root logger
    uvicorn.run(app, host=Config.API_HOST, port=Config.API_PORT, log_config=None)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Сервис остановлен пользователем")

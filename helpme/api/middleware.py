"""
Middleware для логирования запросов и времени обработки
"""

import logging
import time
import uuid

from fastapi import Request


logger = logging.getLogger(__name__)


async def request_logging_middleware(request: Request, call_next):
    """
    Логирование каждого запроса

    Логирует метод, путь, роль участника, статус ответа и время обработки.
    Проставляет X-Request-ID (берётся из запроса или генерируется).
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    actor = f"{request.headers.get('X-Actor-Role', '-')}:{request.headers.get('X-Actor-Id', '-')}"

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000

    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(
        level,
        "%s %s | actor=%s | %s | %.1f ms | request_id=%s",
        request.method,
        request.url.path,
        actor,
        response.status_code,
        duration_ms,
        request_id,
    )
    if duration_ms > 1000:
        logger.warning("Медленный запрос %s %s: %.0f ms", request.method, request.url.path, duration_ms)

    response.headers["X-Request-ID"] = request_id
    return response

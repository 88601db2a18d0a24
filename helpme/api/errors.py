"""
Преобразование исключений в HTTP ответы

Тело ошибки всегда {"code", "message", "details"}.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from helpme.domain.exceptions import (
    CalculationAnomalyError,
    CancellationPolicyError,
    DomainError,
    ExternalCollaboratorError,
    IllegalTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from helpme.repositories.exceptions import (
    ConcurrentModificationError,
    EntityNotFoundError,
    RepositoryError,
)
from helpme.utils.sentry import capture_unexpected_error


logger = logging.getLogger(__name__)


class RateLimitExceededError(DomainError):
    """Превышен лимит запросов"""

    code = "RATE_LIMITED"

    def __init__(self, message: str, policy: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message, {"policy": policy, "retry_after": retry_after})


STATUS_CODES: dict[type[Exception], int] = {
    EntityNotFoundError: 404,
    UnauthorizedError: 403,
    ValidationFailedError: 422,
    IllegalTransitionError: 409,
    CancellationPolicyError: 409,
    CalculationAnomalyError: 409,
    ConcurrentModificationError: 409,
    RateLimitExceededError: 429,
    ExternalCollaboratorError: 502,
}


def status_code_for(exc: Exception) -> int:
    for exc_type in type(exc).__mro__:
        if exc_type in STATUS_CODES:
            return STATUS_CODES[exc_type]
    if isinstance(exc, RepositoryError):
        return 409
    return 400


def error_body(code: str, message: str, details: dict | None = None) -> dict:
    return {"code": code, "message": message, "details": details or {}}


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info(
        "%s %s -> %s %s: %s",
        request.method,
        request.url.path,
        status_code,
        exc.code,
        exc.message,
    )
    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc.code, exc.message, exc.details),
        headers=headers,
    )


async def repository_error_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    status_code = status_code_for(exc)
    code = getattr(exc, "code", "REPOSITORY_ERROR")
    message = getattr(exc, "message", str(exc))
    logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, code)
    return JSONResponse(
        status_code=status_code,
        content=error_body(code, message, getattr(exc, "details", None)),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Некорректные данные запроса") if errors else "Некорректные данные запроса"
    return JSONResponse(
        status_code=422,
        content=error_body(
            ValidationFailedError.code,
            message,
            {"errors": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors]},
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request_id = _request_id(request)
    logger.exception(
        "UNHANDLED ERROR | %s %s | request_id=%s", request.method, request.url.path, request_id
    )
    capture_unexpected_error(exc, path=request.url.path, request_id=request_id)
    return JSONResponse(
        status_code=500,
        content=error_body("INTERNAL_ERROR", "Внутренняя ошибка сервера", {"request_id": request_id}),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RepositoryError, repository_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

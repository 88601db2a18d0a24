"""
Зависимости FastAPI: сервисы, участник запроса, rate limiting
"""

import logging

from fastapi import Depends, Header, Request, Response
from pydantic import BaseModel

from helpme.api.errors import RateLimitExceededError
from helpme.domain.exceptions import UnauthorizedError
from helpme.schemas.order import Actor
from helpme.services.order_lifecycle import OrderLifecycleService
from helpme.services.rate_limiter import RateLimiter, RateLimitPolicy
from helpme.services.service_factory import ServiceFactory
from helpme.services.settlement_service import SettlementService
from helpme.services.verification_store import VerificationStore


logger = logging.getLogger(__name__)


def get_factory(request: Request) -> ServiceFactory:
    return request.app.state.factory


def get_order_service(factory: ServiceFactory = Depends(get_factory)) -> OrderLifecycleService:
    return factory.order_service


def get_settlement_service(factory: ServiceFactory = Depends(get_factory)) -> SettlementService:
    return factory.settlement_service


def get_rate_limiter(factory: ServiceFactory = Depends(get_factory)) -> RateLimiter:
    return factory.rate_limiter


def get_verification_store(factory: ServiceFactory = Depends(get_factory)) -> VerificationStore:
    return factory.verification_store


def get_actor(
    x_actor_id: int | None = Header(None),
    x_actor_role: str | None = Header(None),
) -> Actor:
    """
    Участник запроса

    Аутентификация выполняется шлюзом перед сервисом, сюда приходят
    уже проверенные заголовки X-Actor-Id и X-Actor-Role.
    """
    if x_actor_id is None or not x_actor_role:
        raise UnauthorizedError("Не указан участник запроса")
    # Ошибка валидации роли превращается в 422 обработчиком ValidationError
    return Actor(id=x_actor_id, role=x_actor_role)


def _identity(request: Request) -> str:
    actor_id = request.headers.get("X-Actor-Id")
    if actor_id:
        return f"actor:{actor_id}"
    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def rate_limit(policy: RateLimitPolicy):
    """
    Dependency для ограничения частоты запросов по политике

    Ключ: ID участника, а если его нет, IP адрес клиента.
    """

    async def dependency(
        request: Request,
        response: Response,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        result = limiter.check_and_increment(policy, _identity(request))
        if not result.allowed:
            raise RateLimitExceededError(policy.message, policy.name, result.retry_after)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)

    return dependency


def build_command(command_cls: type[BaseModel], payload: dict | None, **path_params):
    """Команда из тела запроса и параметров пути (параметры пути приоритетнее)"""
    return command_cls(**{**(payload or {}), **path_params})

"""
Сервисы бизнес-логики
"""

from helpme.services.integration_dispatcher import IntegrationDispatcher
from helpme.services.order_lifecycle import OrderLifecycleService
from helpme.services.rate_limiter import PRESETS, RateLimiter, RateLimitPolicy, RateLimitResult
from helpme.services.scheduler import TaskScheduler
from helpme.services.service_factory import ServiceFactory
from helpme.services.settlement_service import SettlementService
from helpme.services.unit_of_work import SYSTEM_ACTOR, UnitOfWork
from helpme.services.verification_store import VerificationStore


__all__ = [
    "PRESETS",
    "SYSTEM_ACTOR",
    "IntegrationDispatcher",
    "OrderLifecycleService",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimiter",
    "ServiceFactory",
    "SettlementService",
    "TaskScheduler",
    "UnitOfWork",
    "VerificationStore",
]

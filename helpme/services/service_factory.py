"""
Factory для создания сервисов и внешних интеграций
"""

import logging

from aiogram import Bot

from helpme.core.config import Config
from helpme.database.orm_database import ORMDatabase
from helpme.integrations.base import Notifier, PaymentGateway
from helpme.integrations.notifiers import LoggingNotifier, TelegramNotifier
from helpme.integrations.payment_gateway import HttpPaymentGateway, InMemoryPaymentGateway
from helpme.repositories.user_repository import UserRepository
from helpme.services.integration_dispatcher import IntegrationDispatcher
from helpme.services.order_lifecycle import OrderLifecycleService
from helpme.services.rate_limiter import RateLimiter
from helpme.services.scheduler import TaskScheduler
from helpme.services.settlement_service import SettlementService
from helpme.services.verification_store import VerificationStore


logger = logging.getLogger(__name__)


class ServiceFactory:
    """
    Factory для создания сервисов с инжекцией зависимостей

    Уведомления и платёжный шлюз выбираются по конфигурации,
    если не переданы явно (тесты передают свои реализации).
    """

    def __init__(
        self,
        db: ORMDatabase,
        notifier: Notifier | None = None,
        payment_gateway: PaymentGateway | None = None,
    ):
        """
        Инициализация фабрики

        Args:
            db: База данных
            notifier: Сервис уведомлений
            payment_gateway: Платёжный шлюз
        """
        self.db = db
        self._notifier = notifier
        self._payment_gateway = payment_gateway
        self._bot: Bot | None = None
        self._dispatcher = None
        self._order_service = None
        self._settlement_service = None
        self._rate_limiter = None
        self._verification_store = None
        self._scheduler = None

    async def _resolve_chat_id(self, user_id: int) -> int | None:
        async with self.db.get_session() as session:
            return await UserRepository(session).get_chat_id(user_id)

    @property
    def notifier(self) -> Notifier:
        """Ленивая инициализация сервиса уведомлений"""
        if self._notifier is None:
            if Config.NOTIFIER_BACKEND == "telegram":
                self._bot = Bot(token=Config.BOT_TOKEN)
                self._notifier = TelegramNotifier(self._bot, self._resolve_chat_id)
            else:
                self._notifier = LoggingNotifier()
            logger.info(f"Уведомления: {type(self._notifier).__name__}")
        return self._notifier

    @property
    def payment_gateway(self) -> PaymentGateway:
        """Ленивая инициализация платёжного шлюза"""
        if self._payment_gateway is None:
            if Config.PAYMENT_GATEWAY_BACKEND == "http":
                self._payment_gateway = HttpPaymentGateway(
                    Config.PAYMENT_GATEWAY_URL,
                    api_key=Config.PAYMENT_GATEWAY_API_KEY,
                    timeout=Config.INTEGRATION_TIMEOUT,
                )
            else:
                self._payment_gateway = InMemoryPaymentGateway()
            logger.info(f"Платёжный шлюз: {type(self._payment_gateway).__name__}")
        return self._payment_gateway

    @property
    def dispatcher(self) -> IntegrationDispatcher:
        """Получение диспетчера outbox-задач"""
        if self._dispatcher is None:
            self._dispatcher = IntegrationDispatcher(
                self.db, self.notifier, self.payment_gateway
            )
        return self._dispatcher

    @property
    def order_service(self) -> OrderLifecycleService:
        """Получение Order Lifecycle Service"""
        if self._order_service is None:
            self._order_service = OrderLifecycleService(self.db, self.dispatcher)
        return self._order_service

    @property
    def settlement_service(self) -> SettlementService:
        """Получение Settlement Service"""
        if self._settlement_service is None:
            self._settlement_service = SettlementService(self.db, self.dispatcher)
        return self._settlement_service

    @property
    def rate_limiter(self) -> RateLimiter:
        if self._rate_limiter is None:
            self._rate_limiter = RateLimiter(enabled=Config.RATE_LIMIT_ENABLED)
        return self._rate_limiter

    @property
    def verification_store(self) -> VerificationStore:
        if self._verification_store is None:
            self._verification_store = VerificationStore()
        return self._verification_store

    @property
    def scheduler(self) -> TaskScheduler:
        """Получение планировщика фоновых задач"""
        if self._scheduler is None:
            self._scheduler = TaskScheduler(
                self.dispatcher,
                ttl_stores=[self.rate_limiter.store, self.verification_store.store],
            )
        return self._scheduler

    async def close(self) -> None:
        """Освобождение внешних ресурсов"""
        if self._dispatcher is not None:
            await self._dispatcher.drain()
        if isinstance(self._payment_gateway, HttpPaymentGateway):
            await self._payment_gateway.close()
        if self._bot is not None:
            await self._bot.session.close()

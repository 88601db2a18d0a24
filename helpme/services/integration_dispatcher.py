"""
Выполнение задач внешних интеграций после commit (outbox)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from helpme.core.config import Config, Messages
from helpme.core.constants import (
    AuditAction,
    IntegrationAction,
    IntegrationStatus,
    UserRole,
)
from helpme.database.orm_database import ORMDatabase
from helpme.database.orm_models import IntegrationEvent
from helpme.integrations.base import Notifier, PaymentGateway, PaymentResult
from helpme.repositories.audit_repository import AuditRepository
from helpme.repositories.exceptions import ConcurrentModificationError
from helpme.repositories.integration_event_repository import IntegrationEventRepository
from helpme.utils.helpers import get_now
from helpme.utils.retry import retry_async


logger = logging.getLogger(__name__)

ResultHandler = Callable[[dict[str, Any], PaymentResult], Awaitable[None]]
FailureHandler = Callable[[dict[str, Any], str], Awaitable[None]]


class IntegrationDispatcher:
    """
    Диспетчер outbox-задач

    Сбой внешнего сервиса не откатывает уже зафиксированное изменение статуса:
    задача переходит в retrying с экспоненциальной задержкой, после
    исчерпания повторов - в failed с записью в аудит и уведомлением администраторов.

    Задача становится success только после того, как обработчик результата
    применил его к заявке. Все повторы задачи идут к шлюзу с одним
    idempotency key.
    """

    def __init__(
        self,
        db: ORMDatabase,
        notifier: Notifier,
        payment_gateway: PaymentGateway,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_minutes: int | None = None,
        handler_attempts: int | None = None,
        pending_grace_seconds: int | None = None,
    ):
        """
        Args:
            db: База данных
            notifier: Сервис уведомлений
            payment_gateway: Платёжный шлюз
            max_attempts: Попыток внутри одного прохода (backoff в секундах)
            base_delay: Базовая задержка между попытками (секунды)
            timeout: Таймаут одного вызова (секунды)
            max_retries: Проходов до перевода задачи в failed
            retry_base_minutes: База экспоненциальной задержки между проходами (минуты)
            handler_attempts: Попыток обработчика результата при конфликте версий
            pending_grace_seconds: Через сколько секунд pending задача считается зависшей
        """
        self.db = db
        self.notifier = notifier
        self.payment_gateway = payment_gateway
        self.max_attempts = max_attempts or Config.INTEGRATION_MAX_ATTEMPTS
        self.base_delay = Config.INTEGRATION_BASE_DELAY if base_delay is None else base_delay
        self.timeout = timeout or Config.INTEGRATION_TIMEOUT
        self.max_retries = max_retries or Config.INTEGRATION_MAX_RETRIES
        self.retry_base_minutes = retry_base_minutes or Config.INTEGRATION_RETRY_BASE_MINUTES
        self.handler_attempts = handler_attempts or Config.INTEGRATION_HANDLER_ATTEMPTS
        self.pending_grace_seconds = (
            Config.INTEGRATION_PENDING_GRACE_SECONDS
            if pending_grace_seconds is None
            else pending_grace_seconds
        )

        self._result_handlers: dict[str, ResultHandler] = {}
        self._failure_handlers: dict[str, FailureHandler] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()

    def on_success(self, action: str, handler: ResultHandler) -> None:
        """Обработчик успешного результата платёжной операции"""
        self._result_handlers[action] = handler

    def on_failure(self, action: str, handler: FailureHandler) -> None:
        """Обработчик окончательного сбоя (после всех повторов)"""
        self._failure_handlers[action] = handler

    def schedule(self, event_ids: list[int]) -> None:
        """
        Запуск задач в фоне (не блокирует ответ клиенту)

        Args:
            event_ids: ID задач, созданных в только что зафиксированной транзакции
        """
        if not event_ids:
            return
        task = asyncio.create_task(self._process_many(event_ids))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def drain(self) -> None:
        """Дождаться завершения фоновых задач"""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    async def _process_many(self, event_ids: list[int]) -> None:
        for event_id in event_ids:
            try:
                await self.process_event(event_id)
            except Exception as e:
                logger.exception("Ошибка обработки задачи интеграции #%s: %s", event_id, e)

    async def process_due(self) -> int:
        """
        Повтор задач с наступившим временем (вызывается планировщиком)

        Подбирает и pending задачи, не выполненные дольше pending_grace_seconds:
        фоновая задача могла не дожить до выполнения (рестарт процесса).

        Returns:
            Количество обработанных задач
        """
        grace = timedelta(seconds=self.pending_grace_seconds)
        async with self.db.get_session() as session:
            due = await IntegrationEventRepository(session).get_due(pending_grace=grace)
            event_ids = [event.id for event in due]

        if event_ids:
            logger.info("Повтор задач интеграции: %s", event_ids)
        await self._process_many(event_ids)
        return len(event_ids)

    async def process_event(self, event_id: int) -> str:
        """
        Выполнение одной задачи

        Если вызов шлюза прошёл, а обработчик результата не смог его применить,
        ссылка шлюза сохраняется в задаче: следующий проход повторяет только
        обработчик, шлюз повторно не вызывается.

        Args:
            event_id: ID задачи

        Returns:
            Итоговый статус задачи
        """
        async with self.db.get_session() as session:
            event = await IntegrationEventRepository(session).get_or_raise(event_id)
            if event.status in (IntegrationStatus.SUCCESS, IntegrationStatus.FAILED):
                return event.status
            action = event.action
            payload = dict(event.payload)
            executed_reference = event.result_reference

        if executed_reference is not None:
            result = PaymentResult(success=True, reference=executed_reference or None)
        else:
            try:
                result = await self._execute(event_id, action, payload)
            except Exception as e:
                logger.warning("Задача интеграции #%s (%s) не выполнена: %s", event_id, action, e)
                return await self._record_failure(event_id, str(e))

        handler = self._result_handlers.get(action)
        if handler is not None and result is not None:
            try:
                await self._apply_result(handler, payload, result)
            except Exception as e:
                logger.warning(
                    "Результат задачи интеграции #%s (%s) не применён: %s", event_id, action, e
                )
                return await self._record_failure(
                    event_id, f"результат не применён: {e}", result_reference=result.reference or ""
                )

        async with self.db.get_session() as session:
            event = await IntegrationEventRepository(session).get_or_raise(event_id)
            event.status = IntegrationStatus.SUCCESS
            event.last_error = None
            event.next_retry_at = None

        logger.info("Задача интеграции #%s (%s) выполнена", event_id, action)
        return IntegrationStatus.SUCCESS

    async def _apply_result(
        self, handler: ResultHandler, payload: dict[str, Any], result: PaymentResult
    ) -> None:
        """Обработчик результата; при конфликте версий заявка перечитывается и попытка повторяется"""
        for attempt in range(1, self.handler_attempts + 1):
            try:
                await handler(payload, result)
                return
            except ConcurrentModificationError as e:
                if attempt >= self.handler_attempts:
                    raise
                logger.info("Конфликт версий при применении результата (попытка %s): %s", attempt, e)

    @staticmethod
    def idempotency_key(event_id: int, action: str) -> str:
        """Ключ одинаков для всех повторов задачи"""
        return f"helpme-{action}-{event_id}"

    async def _execute(
        self, event_id: int, action: str, payload: dict[str, Any]
    ) -> PaymentResult | None:
        key = self.idempotency_key(event_id, action)

        @retry_async(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            timeout=self.timeout,
        )
        async def _call() -> PaymentResult | None:
            if action == IntegrationAction.NOTIFY:
                await self.notifier.notify(
                    payload["user_id"], payload["event_type"], payload.get("data", {})
                )
                return None
            if action == IntegrationAction.CAPTURE:
                return await self.payment_gateway.capture(
                    payload["order_id"], payload["amount"], payload["kind"], idempotency_key=key
                )
            if action == IntegrationAction.REFUND:
                return await self.payment_gateway.refund(
                    payload["order_id"], payload["amount"], idempotency_key=key
                )
            if action == IntegrationAction.PAYOUT:
                return await self.payment_gateway.payout(
                    payload["order_id"], payload["helper_id"], payload["amount"], idempotency_key=key
                )
            raise ValueError(f"Неизвестное действие интеграции: {action}")

        _call.__name__ = f"integration_{action}"
        return await _call()

    async def _record_failure(
        self, event_id: int, error: str, result_reference: str | None = None
    ) -> str:
        async with self.db.get_session() as session:
            event = await IntegrationEventRepository(session).get_or_raise(event_id)
            event.retry_count += 1
            event.last_error = error[:1000]
            if result_reference is not None:
                event.result_reference = result_reference[:100]
            final = event.retry_count >= self.max_retries

            if final:
                event.status = IntegrationStatus.FAILED
                event.next_retry_at = None
            else:
                event.status = IntegrationStatus.RETRYING
                # Экспоненциальная задержка: 1, 2, 4... минут
                delay = self.retry_base_minutes * (2 ** (event.retry_count - 1))
                event.next_retry_at = get_now() + timedelta(minutes=delay)

            await AuditRepository(session).append(
                action=AuditAction.INTEGRATION_FAILED,
                actor_id=None,
                actor_role=UserRole.SYSTEM,
                entity_type="integration_event",
                entity_id=event.id,
                order_id=event.order_id,
                before_status=None,
                after_status=event.status,
                after_values={
                    "action": event.action,
                    "retry_count": event.retry_count,
                    "error": event.last_error,
                    "final": final,
                    "result_reference": event.result_reference,
                },
                payload=event.payload,
            )
            status = event.status
            action = event.action
            payload = dict(event.payload)
            executed = event.result_reference is not None

        if final:
            logger.error(
                "Задача интеграции #%s (%s) окончательно не выполнена: %s", event_id, action, error
            )
            await self._notify_admins(event_id, action, error)
            handler = self._failure_handlers.get(action)
            # Операция в шлюзе выполнена, платёж не отмечается неуспешным
            if handler is not None and not executed:
                await handler(payload, error)

        return status

    async def _notify_admins(self, event_id: int, action: str, error: str) -> None:
        text = Messages.INTEGRATION_FAILED.format(event_id=event_id, action=action, error=error)
        for admin_id in Config.ADMIN_IDS:
            try:
                await self.notifier.notify(admin_id, "integration_failed", {"text": text})
            except Exception as e:
                logger.error("Не удалось уведомить администратора %s: %s", admin_id, e)

"""
Тесты outbox-диспетчера внешних интеграций и планировщика повторов
"""
from datetime import timedelta

import pytest

from helpme.core.config import Config
from helpme.core.constants import (
    AuditAction,
    IntegrationAction,
    IntegrationChannel,
    IntegrationStatus,
    NotificationEvent,
    OrderStatus,
    PaymentStatus,
    SettlementStatus,
)
from helpme.database.orm_models import IntegrationEvent
from helpme.repositories.audit_repository import AuditRepository
from helpme.repositories.exceptions import ConcurrentModificationError
from helpme.repositories.integration_event_repository import IntegrationEventRepository
from helpme.repositories.payment_repository import PaymentRepository
from helpme.schemas.settlement import PaySettlementCommand, SettlementCommand
from helpme.services.scheduler import TaskScheduler
from helpme.utils.helpers import get_now
from helpme.utils.ttl_store import TTLStore


pytestmark = pytest.mark.integration


async def find_event(db, order_id: int, action: str) -> IntegrationEvent:
    async with db.get_session() as session:
        events = await IntegrationEventRepository(session).list_for_order(order_id)
    return next(e for e in events if e.action == action)


async def failure_entries(db, order_id: int) -> list:
    async with db.get_session() as session:
        entries = await AuditRepository(session).history(order_id)
    return [e for e in entries if e.action == AuditAction.INTEGRATION_FAILED]


async def pay_settlement(driver, gateway, failures: int = 0, message: str = "") -> int:
    admin = driver.people.admin
    order_id = await driver.balance_paid()
    if failures:
        gateway.fail_next(times=failures, message=message)
    settlement = await driver.settlement(order_id)
    await driver.settlements.confirm(SettlementCommand(settlement_id=settlement.id), admin)
    await driver.settlements.pay(PaySettlementCommand(settlement_id=settlement.id), admin)
    await driver.drain()
    return order_id


class TestDispatcherFailures:
    """Тесты сбоев внешних вызовов"""

    async def test_payout_failure_keeps_committed_state(self, driver, gateway, db, notifier, monkeypatch):
        """Тест: сбой выплаты не откатывает статус, задача уходит в failed после повторов"""
        monkeypatch.setattr(Config, "ADMIN_IDS", [driver.people.admin.id])
        dispatcher = driver.factory.dispatcher

        order_id = await pay_settlement(driver, gateway, failures=3, message="bank offline")
        payout = await find_event(db, order_id, IntegrationAction.PAYOUT)

        assert payout.status == IntegrationStatus.RETRYING
        assert payout.retry_count == 1
        assert payout.next_retry_at > get_now()
        assert "bank offline" in payout.last_error

        assert await dispatcher.process_event(payout.id) == IntegrationStatus.RETRYING
        assert await dispatcher.process_event(payout.id) == IntegrationStatus.FAILED
        assert await dispatcher.process_event(payout.id) == IntegrationStatus.FAILED

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.SETTLEMENT_PAID
        assert aggregate.settlement.status == SettlementStatus.PAID

        entries = await failure_entries(db, order_id)
        assert [e.after_values["retry_count"] for e in entries] == [1, 2, 3]
        assert entries[-1].after_status == IntegrationStatus.FAILED
        assert entries[-1].after_values["final"] is True
        assert notifier.events_for(driver.people.admin.id) == ["integration_failed"]
        assert len([call for call in gateway.calls if call[0] == "payout"]) == 3

    async def test_retry_delay_grows(self, driver, gateway, db):
        """Тест: задержка повтора растёт экспоненциально"""
        gateway.fail_next(times=2)
        order_id = await driver.create()
        await driver.orders.request_deposit_payment(order_id, driver.people.requester)
        await driver.drain()

        first = await find_event(db, order_id, IntegrationAction.CAPTURE)
        await driver.factory.dispatcher.process_event(first.id)
        second = await find_event(db, order_id, IntegrationAction.CAPTURE)

        first_delay = first.next_retry_at - first.updated_at
        second_delay = second.next_retry_at - second.updated_at
        assert timedelta(seconds=50) < first_delay <= timedelta(minutes=1, seconds=5)
        assert timedelta(minutes=1, seconds=50) < second_delay <= timedelta(minutes=2, seconds=5)

    async def test_capture_failure_marks_payment_failed(self, driver, gateway, db):
        """Тест: окончательный сбой capture помечает платёж неуспешным, оплату можно повторить"""
        requester = driver.people.requester
        gateway.fail_next(times=3, retryable=False, message="card declined")
        order_id = await driver.create()
        await driver.orders.request_deposit_payment(order_id, requester)
        await driver.drain()

        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)
        await driver.factory.dispatcher.process_event(capture.id)
        await driver.factory.dispatcher.process_event(capture.id)

        async with db.get_session() as session:
            payments = await PaymentRepository(session).list_for_order(order_id)
        assert [p.status for p in payments] == [PaymentStatus.FAILED]
        assert "card declined" in payments[0].failure_reason

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.PENDING_DEPOSIT

        await driver.orders.request_deposit_payment(order_id, requester)
        await driver.drain()
        assert (await driver.aggregate(order_id)).order.status == OrderStatus.OPEN

    async def test_success_after_retry(self, driver, gateway, db):
        """Тест: повтор после временного сбоя применяет результат"""
        gateway.fail_next(times=1)
        order_id = await driver.create()
        await driver.orders.request_deposit_payment(order_id, driver.people.requester)
        await driver.drain()

        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)
        assert await driver.factory.dispatcher.process_event(capture.id) == IntegrationStatus.SUCCESS
        await driver.drain()

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.OPEN
        assert aggregate.order.deposit_paid_amount == 27720

        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)
        assert capture.last_error is None
        assert capture.next_retry_at is None


class TestScheduledRetries:
    """Тесты повтора задач планировщиком"""

    async def make_due(self, db, event_id: int) -> None:
        async with db.get_session() as session:
            event = await IntegrationEventRepository(session).get_or_raise(event_id)
            event.next_retry_at = get_now() - timedelta(seconds=1)

    async def test_process_due_skips_future_retries(self, driver, gateway, db):
        """Тест: задачи с будущим временем повтора не берутся"""
        gateway.fail_next(times=1)
        order_id = await driver.create()
        await driver.orders.request_deposit_payment(order_id, driver.people.requester)
        await driver.drain()

        assert await driver.factory.dispatcher.process_due() == 0

        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)
        await self.make_due(db, capture.id)
        scheduler = TaskScheduler(driver.factory.dispatcher)

        assert await scheduler.retry_integrations() == 1
        await driver.drain()
        assert (await driver.aggregate(order_id)).order.status == OrderStatus.OPEN

    async def test_purge_ttl_stores(self, driver, clock):
        """Тест: планировщик чистит истёкшие записи хранилищ"""
        store = TTLStore(clock=clock)
        store.set("short", 1, ttl=10)
        store.set("long", 2, ttl=600)
        scheduler = TaskScheduler(driver.factory.dispatcher, ttl_stores=[store])

        clock.advance(60)

        assert await scheduler.purge_ttl_stores() == 1
        assert len(store) == 1


class ConflictingResultHandler:
    """Обработчик результата, который первые conflicts вызовов получает конфликт версий"""

    def __init__(self, handler, conflicts: int):
        self.handler = handler
        self.conflicts = conflicts
        self.calls = 0

    async def __call__(self, payload, result) -> None:
        self.calls += 1
        if self.calls <= self.conflicts:
            raise ConcurrentModificationError("Order", payload["order_id"], 1, 2)
        await self.handler(payload, result)


class TestResultHandling:
    """Тесты применения результата шлюза к заявке"""

    async def request_deposit(self, driver) -> int:
        order_id = await driver.create()
        await driver.orders.request_deposit_payment(order_id, driver.people.requester)
        await driver.drain()
        return order_id

    async def test_conflict_retried_in_same_pass(self, driver, gateway):
        """Тест: конфликт версий в обработчике повторяется сразу, задача выполняется"""
        handler = ConflictingResultHandler(driver.orders.handle_capture_result, conflicts=1)
        driver.factory.dispatcher.on_success(IntegrationAction.CAPTURE, handler)

        order_id = await self.request_deposit(driver)

        assert handler.calls == 2
        assert (await driver.aggregate(order_id)).order.status == OrderStatus.OPEN
        assert len([call for call in gateway.calls if call[0] == "capture"]) == 1

    async def test_unapplied_result_retried_without_second_capture(self, driver, gateway, db):
        """Тест: результат не применён, следующий проход повторяет только обработчик"""
        dispatcher = driver.factory.dispatcher
        handler = ConflictingResultHandler(driver.orders.handle_capture_result, conflicts=3)
        dispatcher.on_success(IntegrationAction.CAPTURE, handler)

        order_id = await self.request_deposit(driver)
        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)

        assert capture.status == IntegrationStatus.RETRYING
        assert capture.result_reference.startswith("capture-")
        assert (await driver.aggregate(order_id)).order.status == OrderStatus.PENDING_DEPOSIT

        assert await dispatcher.process_event(capture.id) == IntegrationStatus.SUCCESS
        await driver.drain()

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.OPEN
        assert len([call for call in gateway.calls if call[0] == "capture"]) == 1

        async with db.get_session() as session:
            payments = await PaymentRepository(session).list_for_order(order_id)
        assert payments[0].reference == capture.result_reference

    async def test_captured_payment_not_failed_after_retries(self, driver, gateway, db):
        """Тест: деньги списаны, но результат так и не применён: платёж не отмечается неуспешным"""
        dispatcher = driver.factory.dispatcher
        handler = ConflictingResultHandler(driver.orders.handle_capture_result, conflicts=100)
        dispatcher.on_success(IntegrationAction.CAPTURE, handler)

        order_id = await self.request_deposit(driver)
        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)
        await dispatcher.process_event(capture.id)
        assert await dispatcher.process_event(capture.id) == IntegrationStatus.FAILED

        async with db.get_session() as session:
            payments = await PaymentRepository(session).list_for_order(order_id)
        assert [p.status for p in payments] == [PaymentStatus.REQUESTED]
        assert len([call for call in gateway.calls if call[0] == "capture"]) == 1

        entries = await failure_entries(db, order_id)
        assert entries[-1].after_values["final"] is True
        assert entries[-1].after_values["result_reference"] == capture.result_reference

    async def test_idempotency_key_stable_across_retries(self, driver, gateway, db):
        """Тест: повтор после сбоя идёт к шлюзу с тем же ключом"""
        gateway.fail_next(times=1)
        order_id = await self.request_deposit(driver)
        capture = await find_event(db, order_id, IntegrationAction.CAPTURE)

        await driver.factory.dispatcher.process_event(capture.id)

        key = driver.factory.dispatcher.idempotency_key(capture.id, IntegrationAction.CAPTURE)
        assert gateway.idempotency_keys == [key, key]


class TestStuckPendingEvents:
    """Тесты задач, фоновое выполнение которых не состоялось"""

    async def enqueue_notification(self, db, user_id: int, age: timedelta) -> int:
        async with db.get_session() as session:
            event = await IntegrationEventRepository(session).enqueue(
                IntegrationChannel.NOTIFICATION,
                IntegrationAction.NOTIFY,
                {"user_id": user_id, "event_type": NotificationEvent.ORDER_OPENED, "data": {}},
            )
            event.created_at = get_now() - age
            return event.id

    async def test_old_pending_event_processed(self, driver, db, notifier):
        """Тест: pending задача старше порога подбирается планировщиком"""
        requester = driver.people.requester
        stuck_id = await self.enqueue_notification(db, requester.id, timedelta(minutes=10))
        fresh_id = await self.enqueue_notification(db, requester.id, timedelta(seconds=5))

        scheduler = TaskScheduler(driver.factory.dispatcher)
        assert await scheduler.retry_integrations() == 1

        async with db.get_session() as session:
            events = IntegrationEventRepository(session)
            stuck = await events.get_or_raise(stuck_id)
            fresh = await events.get_or_raise(fresh_id)
        assert stuck.status == IntegrationStatus.SUCCESS
        assert fresh.status == IntegrationStatus.PENDING
        assert notifier.events_for(requester.id) == [NotificationEvent.ORDER_OPENED]

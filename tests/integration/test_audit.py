"""
Тесты журнала аудита и истории заявки
"""
import asyncio

import pytest
from sqlalchemy import func, select

from helpme.core.constants import AuditAction, OrderStatus, UserRole
from helpme.database.orm_models import AuditEntry
from helpme.domain.exceptions import IllegalTransitionError
from helpme.repositories.audit_repository import AuditRepository
from helpme.repositories.exceptions import AppendOnlyViolationError
from helpme.schemas.order import SelectHelperCommand
from helpme.utils.helpers import get_now, payload_digest


pytestmark = pytest.mark.integration


async def count_entries(db, order_id: int) -> int:
    async with db.get_session() as session:
        result = await session.execute(
            select(func.count(AuditEntry.id)).where(AuditEntry.order_id == order_id)
        )
        return result.scalar_one()


class TestAuditTrail:
    """Тесты записей аудита по операциям"""

    async def test_one_entry_per_operation(self, driver, participants):
        """Тест: каждая операция оставляет ровно одну запись"""
        order_id = await driver.balance_paid()

        history = await driver.orders.get_history(order_id, participants.admin)

        assert [entry.action for entry in history.entries] == [
            AuditAction.ORDER_CREATED,
            AuditAction.PAYMENT_REQUESTED,
            AuditAction.PAYMENT_CONFIRMED,
            AuditAction.HELPER_APPLIED,
            AuditAction.HELPER_SELECTED,
            AuditAction.CHECKED_IN,
            AuditAction.CLOSING_SUBMITTED,
            AuditAction.CLOSING_APPROVED,
            AuditAction.PAYMENT_REQUESTED,
            AuditAction.PAYMENT_CONFIRMED,
        ]
        assert history.entries[-1].order_status == OrderStatus.BALANCE_PAID
        assert history.status_as_of == OrderStatus.BALANCE_PAID

    async def test_entry_content(self, driver, participants, order_data):
        """Тест: участник, статусы и отпечаток входных данных"""
        data = order_data()
        aggregate = await driver.orders.create_order(data, participants.requester)
        order_id = aggregate.order.id

        entry = (await driver.orders.get_history(order_id, participants.requester)).entries[0]

        assert entry.actor_id == participants.requester.id
        assert entry.actor_role == UserRole.REQUESTER
        assert entry.entity_type == "order"
        assert entry.after_status == OrderStatus.PENDING_DEPOSIT
        assert entry.after_values["deposit_amount"] == 27720
        assert entry.payload_digest == payload_digest(data.model_dump(mode="json"))

    async def test_system_actor_has_no_id(self, driver, participants):
        """Тест: подтверждение от шлюза записывается от имени системы"""
        order_id = await driver.open()
        history = await driver.orders.get_history(order_id, participants.admin)

        confirmed = next(e for e in history.entries if e.action == AuditAction.PAYMENT_CONFIRMED)
        assert confirmed.actor_id is None
        assert confirmed.actor_role == UserRole.SYSTEM
        assert confirmed.before_status == OrderStatus.PENDING_DEPOSIT
        assert confirmed.after_status == OrderStatus.OPEN

    async def test_failed_operation_leaves_no_entry(self, driver, participants, db):
        """Тест: отклонённая операция не пишет аудит"""
        order_id = await driver.scheduled()
        before = await count_entries(db, order_id)

        with pytest.raises(IllegalTransitionError):
            await driver.orders.select_helper(
                SelectHelperCommand(order_id=order_id, application_id=1), participants.requester
            )

        assert await count_entries(db, order_id) == before


class TestHistoryAsOf:
    """Тесты восстановления истории на момент времени"""

    async def test_status_as_of(self, driver, participants):
        """Тест: статус и записи на момент до оплаты депозита"""
        order_id = await driver.create()
        await asyncio.sleep(0.01)
        moment = get_now()
        await asyncio.sleep(0.01)
        await driver.orders.request_deposit_payment(order_id, participants.requester)
        await driver.drain()

        past = await driver.orders.get_history(order_id, participants.admin, as_of=moment)
        current = await driver.orders.get_history(order_id, participants.admin)

        assert past.status_as_of == OrderStatus.PENDING_DEPOSIT
        assert [e.action for e in past.entries] == [AuditAction.ORDER_CREATED]
        assert current.status_as_of == OrderStatus.OPEN
        assert len(current.entries) == 3

    async def test_before_creation(self, driver, db):
        """Тест: до создания заявки статуса нет"""
        moment = get_now()
        await asyncio.sleep(0.01)
        order_id = await driver.create()

        async with db.get_session() as session:
            assert await AuditRepository(session).status_as_of(order_id, moment) is None


class TestAppendOnly:
    """Тесты неизменяемости журнала"""

    async def test_update_forbidden(self, driver, db):
        """Тест: запись аудита нельзя изменить"""
        order_id = await driver.create()

        with pytest.raises(AppendOnlyViolationError):
            async with db.get_session() as session:
                entry = (await AuditRepository(session).history(order_id))[0]
                entry.action = "order.rewritten"
                await session.flush()

        async with db.get_session() as session:
            entry = (await AuditRepository(session).history(order_id))[0]
            assert entry.action == AuditAction.ORDER_CREATED

    async def test_delete_forbidden(self, driver, db):
        """Тест: запись аудита нельзя удалить"""
        order_id = await driver.create()

        with pytest.raises(AppendOnlyViolationError):
            async with db.get_session() as session:
                entry = (await AuditRepository(session).history(order_id))[0]
                await session.delete(entry)
                await session.flush()

        assert await count_entries(db, order_id) == 1

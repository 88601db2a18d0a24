"""
Тесты конкурентных изменений (optimistic locking)
"""
import asyncio

import pytest

from helpme.core.constants import ApplicationStatus, AuditAction, OrderStatus
from helpme.database.orm_models import Order
from helpme.domain.exceptions import IllegalTransitionError
from helpme.repositories.exceptions import ConcurrentModificationError
from helpme.repositories.order_repository import OrderRepository
from helpme.schemas.order import ApplyCommand, SelectHelperCommand
from helpme.schemas.settlement import SettlementCommand


pytestmark = pytest.mark.integration


class TestOrderVersion:
    """Тесты версии заявки"""

    async def test_version_grows_with_each_change(self, driver):
        """Тест: каждое изменение увеличивает версию"""
        order_id = await driver.create()
        created = await driver.aggregate(order_id)

        await driver.orders.request_deposit_payment(order_id, driver.people.requester)
        await driver.drain()
        opened = await driver.aggregate(order_id)

        assert created.order.version == 1
        assert opened.order.version > created.order.version

    async def test_stale_expected_version(self, driver, participants):
        """Тест: выбор по устаревшей версии отклоняется"""
        order_id = await driver.open()
        seen = await driver.orders.apply_to_order(ApplyCommand(order_id=order_id), participants.helpers[0])
        await driver.apply(order_id, participants.helpers[1])

        with pytest.raises(ConcurrentModificationError) as exc_info:
            await driver.orders.select_helper(
                SelectHelperCommand(
                    order_id=order_id,
                    application_id=seen.applications[0].id,
                    expected_version=seen.order.version,
                ),
                participants.requester,
            )
        assert exc_info.value.expected_version == seen.order.version

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.OPEN
        assert aggregate.order.assigned_helper_id is None

    async def test_matching_expected_version(self, driver, participants):
        """Тест: актуальная версия принимается"""
        order_id = await driver.open()
        application_id = await driver.apply(order_id, participants.helpers[0])
        current = await driver.aggregate(order_id)

        aggregate = await driver.orders.select_helper(
            SelectHelperCommand(
                order_id=order_id,
                application_id=application_id,
                expected_version=current.order.version,
            ),
            participants.requester,
        )
        assert aggregate.order.version > current.order.version

    async def test_stale_write_between_sessions(self, driver, db, participants):
        """Тест: запись по данным, прочитанным до чужого commit, отклоняется"""
        order_id = await driver.open()

        with pytest.raises(ConcurrentModificationError):
            async with db.get_session() as session:
                repository = OrderRepository(session)
                stale = await repository.get_for_update(order_id)
                await driver.apply(order_id, participants.helpers[0])

                stale.title = "Изменено по устаревшей версии"
                await repository.save(stale)

        async with db.get_session() as session:
            order = await session.get(Order, order_id)
            assert order.title != "Изменено по устаревшей версии"

    async def test_autoflush_conflict_inside_operation(self, driver, participants):
        """Тест: конфликт при autoflush перед запросом поднимается как ConcurrentModificationError"""
        order_id = await driver.open()

        with pytest.raises(ConcurrentModificationError) as exc_info:
            async with driver.orders._transaction() as uow:
                stale = await uow.orders.get_for_update(order_id)
                await driver.apply(order_id, participants.helpers[0])

                stale.title = "Изменено по устаревшей версии"
                await uow.applications.list_for_order(order_id)

        assert exc_info.value.entity_type == "Order"
        assert exc_info.value.entity_id is None

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.title != "Изменено по устаревшей версии"


class TestSingleWinner:
    """Тесты: из двух одинаковых действий проходит одно"""

    async def test_second_selection_rejected(self, driver, participants):
        """Тест: повторный выбор исполнителя отклоняется, запись аудита одна"""
        order_id = await driver.open()
        first = await driver.apply(order_id, participants.helpers[0])
        second = await driver.apply(order_id, participants.helpers[1])

        await driver.orders.select_helper(
            SelectHelperCommand(order_id=order_id, application_id=first), participants.requester
        )
        with pytest.raises(IllegalTransitionError):
            await driver.orders.select_helper(
                SelectHelperCommand(order_id=order_id, application_id=second),
                participants.requester,
            )
        await driver.drain()

        history = await driver.orders.get_history(order_id, participants.admin)
        selections = [e for e in history.entries if e.action == AuditAction.HELPER_SELECTED]
        assert len(selections) == 1

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.assigned_helper_id == participants.helpers[0].id

    async def test_stale_settlement_version(self, driver, participants):
        """Тест: действие по устаревшей версии расчёта"""
        order_id = await driver.confirmed()
        settlement = await driver.settlement(order_id)
        admin = participants.admin

        await driver.settlements.confirm(
            SettlementCommand(settlement_id=settlement.id, expected_version=settlement.version), admin
        )
        with pytest.raises(ConcurrentModificationError):
            await driver.settlements.mark_payable(
                SettlementCommand(settlement_id=settlement.id, expected_version=settlement.version),
                admin,
            )

    async def test_parallel_selection_single_winner(self, driver, participants):
        """Тест: два одновременных выбора исполнителя, проходит ровно один"""
        order_id = await driver.open()
        first = await driver.apply(order_id, participants.helpers[0])
        second = await driver.apply(order_id, participants.helpers[1])

        results = await asyncio.gather(
            *(
                driver.orders.select_helper(
                    SelectHelperCommand(order_id=order_id, application_id=application_id),
                    participants.requester,
                )
                for application_id in (first, second)
            ),
            return_exceptions=True,
        )
        await driver.drain()

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], (ConcurrentModificationError, IllegalTransitionError))

        history = await driver.orders.get_history(order_id, participants.admin)
        selections = [e for e in history.entries if e.action == AuditAction.HELPER_SELECTED]
        assert len(selections) == 1

        aggregate = await driver.aggregate(order_id)
        assert aggregate.order.status == OrderStatus.SCHEDULED
        assert aggregate.order.assigned_helper_id == winners[0].order.assigned_helper_id
        selected = [a for a in aggregate.applications if a.status == ApplicationStatus.SELECTED]
        assert len(selected) == 1

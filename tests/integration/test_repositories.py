"""
Тесты репозиториев и ограничений схемы БД
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from helpme.core.constants import (
    ClosingReportStatus,
    IntegrationAction,
    IntegrationChannel,
    IntegrationStatus,
    PaymentKind,
    PaymentStatus,
    UserRole,
)
from helpme.database.orm_models import ClosingReport, Payment
from helpme.repositories.closing_report_repository import ClosingReportRepository
from helpme.repositories.exceptions import EntityNotFoundError
from helpme.repositories.integration_event_repository import IntegrationEventRepository
from helpme.repositories.payment_repository import PaymentRepository
from helpme.repositories.settlement_repository import SettlementRepository
from helpme.repositories.user_repository import UserRepository
from helpme.utils.helpers import get_now


pytestmark = pytest.mark.integration


class TestUserRepository:
    """Тесты репозитория участников"""

    async def test_create_and_get_chat_id(self, db):
        """Тест создания участника и получения чата"""
        async with db.get_session() as session:
            user = await UserRepository(session).create(
                UserRole.HELPER, "Курьер", phone="01011112222", telegram_chat_id=4242
            )
            user_id = user.id

        async with db.get_session() as session:
            users = UserRepository(session)
            assert await users.get_chat_id(user_id) == 4242
            assert await users.get_chat_id(999) is None

    async def test_inactive_user_has_no_chat(self, db):
        """Тест: неактивному участнику уведомления не отправляются"""
        async with db.get_session() as session:
            user = await UserRepository(session).create(UserRole.REQUESTER, "Архив", telegram_chat_id=1)
            user.is_active = False
            user_id = user.id

        async with db.get_session() as session:
            assert await UserRepository(session).get_chat_id(user_id) is None

    async def test_invalid_role_rejected(self, db):
        """Тест: CHECK ограничение на роль"""
        with pytest.raises(IntegrityError):
            async with db.get_session() as session:
                await UserRepository(session).create("boss", "Неизвестный")

    async def test_get_or_raise(self, db):
        """Тест: отсутствующая запись"""
        async with db.get_session() as session:
            with pytest.raises(EntityNotFoundError) as exc_info:
                await UserRepository(session).get_or_raise(999)

        assert exc_info.value.entity_id == 999


class TestClosingReportRepository:
    """Тесты ревизий отчёта о закрытии"""

    async def test_revisions(self, db, driver):
        """Тест: отклонённая ревизия остаётся в истории, действующей считается новая"""
        order_id = await driver.submitted()

        async with db.get_session() as session:
            reports = ClosingReportRepository(session)
            first = await reports.get_active(order_id)
            assert first.revision == 1
            assert await reports.next_revision(order_id) == 2

            first.status = ClosingReportStatus.REJECTED
            await reports.add(
                ClosingReport(
                    order_id=order_id,
                    helper_id=first.helper_id,
                    revision=2,
                    delivered_count=104,
                    returned_count=1,
                )
            )

        async with db.get_session() as session:
            reports = ClosingReportRepository(session)
            active = await reports.get_active(order_id)
            history = await reports.list_for_order(order_id)

        assert active.revision == 2
        assert [(r.revision, r.status) for r in history] == [
            (1, ClosingReportStatus.REJECTED),
            (2, ClosingReportStatus.SUBMITTED),
        ]

    async def test_duplicate_revision_rejected(self, db, driver):
        """Тест: номер ревизии уникален в пределах заявки"""
        order_id = await driver.submitted()

        with pytest.raises(IntegrityError):
            async with db.get_session() as session:
                first = await ClosingReportRepository(session).get_active(order_id)
                await ClosingReportRepository(session).add(
                    ClosingReport(order_id=order_id, helper_id=first.helper_id, revision=1)
                )


class TestSettlementRepository:
    """Тесты ревизий расчёта"""

    async def test_supersede(self, db, driver):
        """Тест: замещение сохраняет старую ревизию"""
        order_id = await driver.confirmed()

        async with db.get_session() as session:
            settlements = SettlementRepository(session)
            current = await settlements.get_current(order_id)
            replacement = await settlements.supersede(
                current,
                type(current)(
                    order_id=current.order_id,
                    helper_id=current.helper_id,
                    closing_report_id=current.closing_report_id,
                    base_supply=current.base_supply,
                    final_supply=current.final_supply,
                    vat=current.vat,
                    final_total=current.final_total,
                    platform_fee_rate=current.platform_fee_rate,
                    platform_fee=current.platform_fee,
                    deductions=5000,
                    raw_payout=current.raw_payout - 5000,
                    driver_payout=current.driver_payout - 5000,
                ),
            )
            assert replacement.revision == 2

        async with db.get_session() as session:
            settlements = SettlementRepository(session)
            current = await settlements.get_current(order_id)
            revisions = await settlements.list_revisions(order_id)

        assert current.driver_payout == 119740
        assert [(r.revision, r.is_current) for r in revisions] == [(1, False), (2, True)]
        assert revisions[0].driver_payout == 124740
        assert revisions[0].superseded_at is not None


class TestOperationalRepositories:
    """Тесты платежей и outbox"""

    async def test_get_open_payment(self, db, driver):
        """Тест: открытым считается только запрошенный платёж"""
        order_id = await driver.create()

        async with db.get_session() as session:
            payments = PaymentRepository(session)
            assert await payments.get_open(order_id, PaymentKind.DEPOSIT) is None
            await payments.add(Payment(order_id=order_id, kind=PaymentKind.DEPOSIT, amount=27720))

        async with db.get_session() as session:
            payments = PaymentRepository(session)
            payment = await payments.get_open(order_id, PaymentKind.DEPOSIT)
            assert payment.amount == 27720
            assert await payments.get_open(order_id, PaymentKind.BALANCE) is None
            payment.status = PaymentStatus.CAPTURED

        async with db.get_session() as session:
            assert await PaymentRepository(session).get_open(order_id, PaymentKind.DEPOSIT) is None

    async def test_get_due(self, db):
        """Тест: к повтору готовы retrying задачи с наступившим временем и зависшие pending"""
        now = get_now()
        async with db.get_session() as session:
            events = IntegrationEventRepository(session)
            pending = await events.enqueue(
                IntegrationChannel.PAYMENT, IntegrationAction.CAPTURE, {"order_id": 1}, order_id=1
            )
            due = await events.enqueue(
                IntegrationChannel.PAYMENT, IntegrationAction.REFUND, {"order_id": 1}, order_id=1
            )
            later = await events.enqueue(
                IntegrationChannel.NOTIFICATION, IntegrationAction.NOTIFY, {"user_id": 2}, order_id=1
            )
            due.status = IntegrationStatus.RETRYING
            due.next_retry_at = now - timedelta(minutes=1)
            later.status = IntegrationStatus.RETRYING
            later.next_retry_at = now + timedelta(minutes=5)
            pending_id, due_id, later_id = pending.id, due.id, later.id

        async with db.get_session() as session:
            events = IntegrationEventRepository(session)
            assert [e.id for e in await events.get_due(now)] == [due_id]
            assert [e.id for e in await events.get_due(now + timedelta(minutes=1))] == [due_id]
            later_due = await events.get_due(now + timedelta(minutes=10))
            assert [e.id for e in later_due] == [pending_id, due_id, later_id]

            short_grace = await events.get_due(
                now + timedelta(minutes=1), pending_grace=timedelta(seconds=30)
            )
            assert [e.id for e in short_grace] == [pending_id, due_id]


"""
Общая инфраструктура сервисов жизненного цикла

UnitOfWork объединяет репозитории одной транзакции и копит outbox-задачи,
которые запускаются только после успешного commit.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpme.core.constants import (
    IntegrationAction,
    IntegrationChannel,
    SettlementStatus,
    UserRole,
)
from helpme.database.orm_database import ORMDatabase
from helpme.database.orm_models import ClosingReport, IntegrationEvent, Order, Settlement
from helpme.domain.exceptions import UnauthorizedError
from helpme.domain.order_state_machine import OrderStateMachine
from helpme.domain.settlement_calculator import (
    ExtraCost,
    SettlementBreakdown,
    SettlementInput,
    SettlementPolicy,
    calculate_settlement,
)
from helpme.domain.settlement_state_machine import SettlementStateMachine
from helpme.repositories.audit_repository import AuditRepository
from helpme.repositories.base import conflict_from_stale_data, is_write_conflict
from helpme.repositories.closing_report_repository import ClosingReportRepository
from helpme.repositories.exceptions import ConcurrentModificationError
from helpme.repositories.integration_event_repository import IntegrationEventRepository
from helpme.repositories.order_repository import ApplicationRepository, OrderRepository
from helpme.repositories.payment_repository import PaymentRepository
from helpme.repositories.settlement_repository import (
    DeductionRepository,
    IncidentRepository,
    SettlementRepository,
)
from helpme.repositories.user_repository import UserRepository
from helpme.schemas.order import Actor
from helpme.schemas.read import (
    ApplicationRead,
    ClosingReportRead,
    IncidentRead,
    OrderAggregate,
    OrderRead,
    PaymentRead,
    SettlementRead,
)
from helpme.services.integration_dispatcher import IntegrationDispatcher
from helpme.utils.helpers import get_now


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(id=0, role=UserRole.SYSTEM)


def order_snapshot(order: Order) -> dict[str, Any]:
    """Значимые поля заявки для журнала аудита"""
    return {
        "status": order.status,
        "version": order.version,
        "assigned_helper_id": order.assigned_helper_id,
        "deposit_amount": order.deposit_amount,
        "deposit_paid_amount": order.deposit_paid_amount,
        "balance_amount": order.balance_amount,
        "total_amount": order.total_amount,
        "refund_amount": order.refund_amount,
    }


def settlement_snapshot(settlement: Settlement | None) -> dict[str, Any] | None:
    """Значимые поля расчёта для журнала аудита"""
    if settlement is None:
        return None
    return {
        "id": settlement.id,
        "revision": settlement.revision,
        "status": settlement.status,
        "final_total": settlement.final_total,
        "platform_fee": settlement.platform_fee,
        "deductions": settlement.deductions,
        "cargo_incident_deduction": settlement.cargo_incident_deduction,
        "driver_payout": settlement.driver_payout,
        "has_anomaly": settlement.has_anomaly,
    }


class UnitOfWork:
    """Репозитории одной транзакции и отложенные outbox-задачи"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.orders = OrderRepository(session)
        self.applications = ApplicationRepository(session)
        self.closing_reports = ClosingReportRepository(session)
        self.settlements = SettlementRepository(session)
        self.deductions = DeductionRepository(session)
        self.incidents = IncidentRepository(session)
        self.payments = PaymentRepository(session)
        self.audit = AuditRepository(session)
        self.outbox = IntegrationEventRepository(session)
        self.pending_events: list[IntegrationEvent] = []

    async def enqueue(
        self,
        channel: str,
        action: str,
        payload: dict[str, Any],
        order_id: int | None = None,
    ) -> IntegrationEvent:
        event = await self.outbox.enqueue(channel, action, payload, order_id=order_id)
        self.pending_events.append(event)
        return event

    async def notify(self, user_id: int | None, event_type: str, order_id: int, **data: Any) -> None:
        """Уведомление участника после commit"""
        if user_id is None:
            return
        await self.enqueue(
            IntegrationChannel.NOTIFICATION,
            IntegrationAction.NOTIFY,
            {
                "user_id": user_id,
                "event_type": event_type,
                "data": {"order_id": order_id, **data},
            },
            order_id=order_id,
        )


class LifecycleServiceBase:
    """Общие проверки, транзакция и расчёт для сервисов заявок и расчётов"""

    def __init__(
        self,
        db: ORMDatabase,
        dispatcher: IntegrationDispatcher,
        order_machine: type[OrderStateMachine] = OrderStateMachine,
        settlement_machine: type[SettlementStateMachine] = SettlementStateMachine,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.order_machine = order_machine
        self.settlement_machine = settlement_machine

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[UnitOfWork]:
        """
        Транзакция операции

        outbox-задачи запускаются только если commit прошёл успешно.
        Конфликт версий при autoflush или commit поднимается как
        ConcurrentModificationError, а не StaleDataError.
        """
        try:
            async with self.db.get_session() as session:
                uow = UnitOfWork(session)
                yield uow
        except StaleDataError as e:
            logger.warning("Конфликт версий при фиксации транзакции: %s", e)
            raise conflict_from_stale_data(e) from e
        except OperationalError as e:
            if not is_write_conflict(e):
                raise
            logger.warning("Параллельная запись в БД: %s", e)
            raise ConcurrentModificationError("Order", None, None) from e
        self.dispatcher.schedule([event.id for event in uow.pending_events])

    # ==================== ПРОВЕРКИ ====================

    @staticmethod
    def _require_role(actor: Actor, *roles: str) -> None:
        if actor.role not in roles:
            raise UnauthorizedError(
                f"Действие недоступно для роли '{UserRole.get_role_name(actor.role)}'",
                role=actor.role,
                allowed_roles=list(roles),
            )

    @staticmethod
    def _require_owner(order: Order, actor: Actor) -> None:
        """Заказчик может действовать только со своими заявками"""
        if actor.role == UserRole.REQUESTER and order.requester_id != actor.id:
            raise UnauthorizedError(
                f"Заявка #{order.id} принадлежит другому заказчику",
                role=actor.role,
                order_id=order.id,
            )

    @staticmethod
    def _require_assigned_helper(order: Order, actor: Actor) -> None:
        """Исполнитель может действовать только по назначенной ему заявке"""
        if actor.role == UserRole.HELPER and order.assigned_helper_id != actor.id:
            raise UnauthorizedError(
                f"Исполнитель {actor.id} не назначен на заявку #{order.id}",
                role=actor.role,
                order_id=order.id,
            )

    def _transition_order(
        self,
        order: Order,
        target: str,
        actor: Actor,
        allow_policy_gated: bool = False,
    ) -> str:
        """
        Перевод заявки в новый статус

        Returns:
            Статус до перехода
        """
        self.order_machine.validate_transition(
            order.status, target, actor.role, allow_policy_gated=allow_policy_gated
        )
        before = order.status
        order.status = target
        logger.info(
            "Заявка #%s: %s → %s (%s %s)", order.id, before, target, actor.role, actor.id
        )
        return before

    def _transition_settlement(self, settlement: Settlement, target: str, actor: Actor) -> str:
        """
        Перевод расчёта в новый статус

        Returns:
            Статус до перехода
        """
        self.settlement_machine.validate_transition(settlement.status, target, actor.role)
        before = settlement.status
        settlement.status = target
        logger.info(
            "Расчёт #%s (заявка #%s): %s → %s",
            settlement.id,
            settlement.order_id,
            before,
            target,
        )
        return before

    @staticmethod
    def _touch(order: Order) -> None:
        """Отметка изменения заявки (увеличивает версию при flush)"""
        order.updated_at = get_now()

    @staticmethod
    def _actor_id(actor: Actor) -> int | None:
        return None if actor.role == UserRole.SYSTEM else actor.id

    async def _audit(
        self,
        uow: UnitOfWork,
        action: str,
        actor: Actor,
        order: Order,
        entity_type: str,
        entity_id: int | None,
        before_status: str | None = None,
        after_status: str | None = None,
        before_values: dict[str, Any] | None = None,
        after_values: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> None:
        """Единственная запись аудита операции (статус заявки берётся после изменения)"""
        await uow.audit.append(
            action=action,
            actor_id=self._actor_id(actor),
            actor_role=actor.role,
            entity_type=entity_type,
            entity_id=entity_id,
            order_id=order.id,
            before_status=before_status,
            after_status=after_status,
            order_status=order.status,
            before_values=before_values,
            after_values=after_values,
            payload=payload,
        )

    # ==================== РАСЧЁТ ====================

    async def _calculate(
        self, uow: UnitOfWork, order: Order, report: ClosingReport
    ) -> SettlementBreakdown:
        """Расчёт по подтверждённому отчёту с текущими удержаниями"""
        inputs = SettlementInput(
            pricing_mode=order.pricing_mode,
            unit_price=order.unit_price,
            delivered_count=report.delivered_count,
            returned_count=report.returned_count,
            other_count=report.other_count,
            extra_costs=tuple(
                ExtraCost(code=item["code"], amount=item["amount"], memo=item.get("memo"))
                for item in report.extra_costs
            ),
            is_urgent=order.is_urgent,
            deductions=await uow.deductions.total_for_order(order.id),
            cargo_incident_deduction=await uow.incidents.confirmed_total(order.id),
        )
        policy = SettlementPolicy.from_snapshot(order.policy_snapshot)
        breakdown = calculate_settlement(inputs, policy)
        if breakdown.has_anomaly:
            logger.warning("Заявка #%s: аномалия расчёта: %s", order.id, breakdown.anomaly_reason)
        return breakdown

    @staticmethod
    def _settlement_from_breakdown(
        order: Order, report: ClosingReport, breakdown: SettlementBreakdown
    ) -> Settlement:
        return Settlement(
            order_id=order.id,
            helper_id=report.helper_id,
            closing_report_id=report.id,
            status=SettlementStatus.PENDING,
            base_supply=breakdown.base_supply,
            other_supply=breakdown.other_supply,
            urgent_fee_supply=breakdown.urgent_fee_supply,
            extra_supply=breakdown.extra_supply,
            final_supply=breakdown.final_supply,
            vat=breakdown.vat,
            final_total=breakdown.final_total,
            platform_fee_rate=str(breakdown.platform_fee_rate_percent),
            platform_fee=breakdown.platform_fee,
            deductions=breakdown.deductions,
            cargo_incident_deduction=breakdown.cargo_incident_deduction,
            raw_payout=breakdown.raw_payout,
            driver_payout=breakdown.driver_payout,
            has_anomaly=breakdown.has_anomaly,
            anomaly_reason=breakdown.anomaly_reason,
            breakdown=breakdown.as_dict(),
            calculated_at=get_now(),
        )

    async def _recalculate(
        self, uow: UnitOfWork, order: Order, current: Settlement
    ) -> Settlement:
        """
        Пересчёт действующего расчёта новой ревизией

        Новая ревизия требует повторного подтверждения (PENDING);
        замороженный расчёт остаётся замороженным.
        """
        report = await uow.closing_reports.get_or_raise(current.closing_report_id)
        breakdown = await self._calculate(uow, order, report)
        replacement = self._settlement_from_breakdown(order, report, breakdown)

        if current.status == SettlementStatus.HOLD:
            replacement.status = SettlementStatus.HOLD
            replacement.held_from_status = SettlementStatus.PENDING
            replacement.hold_reason = current.hold_reason
            replacement.held_at = current.held_at

        replacement = await uow.settlements.supersede(current, replacement)
        order.total_amount = replacement.final_total
        order.balance_amount = max(0, replacement.final_total - order.deposit_paid_amount)
        return replacement

    # ==================== ЧТЕНИЕ ====================

    async def _build_aggregate(self, uow: UnitOfWork, order: Order, **extra: Any) -> OrderAggregate:
        settlement = await uow.settlements.get_current(order.id)
        report = await uow.closing_reports.get_active(order.id)
        applications = await uow.applications.list_for_order(order.id)

        payment = extra.get("payment")
        incident = extra.get("incident")
        return OrderAggregate(
            order=OrderRead.model_validate(order),
            settlement=SettlementRead.model_validate(settlement) if settlement else None,
            closing_report=ClosingReportRead.model_validate(report) if report else None,
            applications=[ApplicationRead.model_validate(a) for a in applications],
            payment=PaymentRead.model_validate(payment) if payment else None,
            incident=IncidentRead.model_validate(incident) if incident else None,
        )

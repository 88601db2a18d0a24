"""
Сервис расчётов с исполнителями (действия администратора)
"""

import logging

from helpme.core.constants import (
    AuditAction,
    IncidentStatus,
    IntegrationAction,
    IntegrationChannel,
    NotificationEvent,
    OrderStatus,
    SettlementStatus,
    UserRole,
)
from helpme.database.orm_models import Deduction, Order, Settlement
from helpme.domain.exceptions import (
    CalculationAnomalyError,
    IllegalTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from helpme.repositories.exceptions import ConcurrentModificationError
from helpme.schemas.order import Actor
from helpme.schemas.read import OrderAggregate, SettlementRead
from helpme.schemas.settlement import (
    AddDeductionCommand,
    HoldSettlementCommand,
    PaySettlementCommand,
    RejectSettlementCommand,
    ResolveIncidentCommand,
    SettlementCommand,
)
from helpme.services.unit_of_work import (
    LifecycleServiceBase,
    UnitOfWork,
    settlement_snapshot,
)
from helpme.utils.helpers import get_now


logger = logging.getLogger(__name__)


class SettlementService(LifecycleServiceBase):
    """
    Сервис для управления расчётами

    Подтверждение, перевод к выплате и выплата заблокированы, пока
    расчёт помечен аномалией (отрицательная выплата до ограничения нулём).
    """

    # ==================== ЗАГРУЗКА ====================

    async def _load(
        self, uow: UnitOfWork, cmd: SettlementCommand
    ) -> tuple[Settlement, Order]:
        """
        Загрузка действующей ревизии расчёта и её заявки

        Raises:
            ConcurrentModificationError: Ревизия замещена или версия не совпадает
        """
        settlement = await uow.settlements.get_or_raise(cmd.settlement_id)
        if not settlement.is_current:
            raise ConcurrentModificationError(
                "Settlement", settlement.id, cmd.expected_version or settlement.version
            )
        if cmd.expected_version is not None and settlement.version != cmd.expected_version:
            raise ConcurrentModificationError(
                "Settlement", settlement.id, cmd.expected_version, settlement.version
            )
        order = await uow.orders.get_for_update(settlement.order_id)
        return settlement, order

    @staticmethod
    def _ensure_no_anomaly(settlement: Settlement) -> None:
        if settlement.has_anomaly:
            raise CalculationAnomalyError(
                f"Расчёт #{settlement.id} содержит аномалию: {settlement.anomaly_reason}",
                settlement_id=settlement.id,
                order_id=settlement.order_id,
                anomaly_reason=settlement.anomaly_reason,
            )

    async def _finish(
        self,
        uow: UnitOfWork,
        action: str,
        actor: Actor,
        order: Order,
        settlement: Settlement,
        before: str | None,
        payload: dict,
        **extra,
    ) -> OrderAggregate:
        await uow.settlements.save(settlement)
        self._touch(order)
        await uow.orders.save(order)
        await self._audit(
            uow,
            action,
            actor,
            order,
            "settlement",
            settlement.id,
            before_status=before,
            after_status=settlement.status,
            after_values={**settlement_snapshot(settlement), **extra},
            payload=payload,
        )
        return await self._build_aggregate(uow, order)

    # ==================== СТАТУСЫ ====================

    async def confirm(self, cmd: SettlementCommand, actor: Actor) -> OrderAggregate:
        """
        Подтверждение расчёта администратором

        Raises:
            CalculationAnomalyError: Расчёт помечен аномалией
        """
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            before = self._transition_settlement(settlement, SettlementStatus.CONFIRMED, actor)
            self._ensure_no_anomaly(settlement)
            settlement.confirmed_at = get_now()
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_CONFIRMED,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
            )

    async def mark_payable(self, cmd: SettlementCommand, actor: Actor) -> OrderAggregate:
        """Перевод подтверждённого расчёта в очередь на выплату"""
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            before = self._transition_settlement(settlement, SettlementStatus.PAYABLE, actor)
            self._ensure_no_anomaly(settlement)
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_PAYABLE,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
            )

    async def hold(self, cmd: HoldSettlementCommand, actor: Actor) -> OrderAggregate:
        """Заморозка расчёта (запоминается статус для последующего release)"""
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            before = self._transition_settlement(settlement, SettlementStatus.HOLD, actor)
            settlement.held_from_status = before
            settlement.hold_reason = cmd.reason
            settlement.held_at = get_now()

            await uow.notify(
                settlement.helper_id,
                NotificationEvent.SETTLEMENT_HELD,
                order.id,
                reason=cmd.reason,
            )
            logger.info(f"Расчёт #{settlement.id} заморожен из {before}: {cmd.reason}")
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_HELD,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
                hold_reason=cmd.reason,
            )

    async def release(self, cmd: SettlementCommand, actor: Actor) -> OrderAggregate:
        """Снятие заморозки: возврат в статус до заморозки"""
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            if settlement.status != SettlementStatus.HOLD:
                raise IllegalTransitionError(
                    "settlement",
                    settlement.status,
                    self.settlement_machine.release_target(settlement.held_from_status),
                    "расчёт не заморожен",
                )
            target = self.settlement_machine.release_target(settlement.held_from_status)
            before = self._transition_settlement(settlement, target, actor)
            settlement.held_from_status = None
            settlement.hold_reason = None
            settlement.held_at = None
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_RELEASED,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
            )

    async def pay(self, cmd: PaySettlementCommand, actor: Actor) -> OrderAggregate:
        """
        Выплата исполнителю

        Расчёт переходит в paid, заявка balance_paid → settlement_paid,
        перевод исполнителю ставится в outbox.

        Raises:
            IllegalTransitionError: Расчёт не подтверждён, заморожен или
                остаток по заявке не оплачен
            CalculationAnomalyError: Расчёт помечен аномалией
        """
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            before = self._transition_settlement(settlement, SettlementStatus.PAID, actor)
            self._ensure_no_anomaly(settlement)
            self._transition_order(order, OrderStatus.SETTLEMENT_PAID, actor)

            settlement.paid_at = get_now()
            settlement.payout_reference = cmd.reference

            await uow.enqueue(
                IntegrationChannel.PAYMENT,
                IntegrationAction.PAYOUT,
                {
                    "order_id": order.id,
                    "helper_id": settlement.helper_id,
                    "amount": settlement.driver_payout,
                    "settlement_id": settlement.id,
                },
                order_id=order.id,
            )
            await uow.notify(
                settlement.helper_id,
                NotificationEvent.SETTLEMENT_PAID,
                order.id,
                amount=settlement.driver_payout,
            )
            logger.info(
                f"Расчёт #{settlement.id}: выплата {settlement.driver_payout} "
                f"исполнителю {settlement.helper_id}"
            )
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_PAID,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
            )

    async def reject(self, cmd: RejectSettlementCommand, actor: Actor) -> OrderAggregate:
        """Отклонение расчёта администратором"""
        async with self._transaction() as uow:
            settlement, order = await self._load(uow, cmd)
            before = self._transition_settlement(settlement, SettlementStatus.REJECTED, actor)
            settlement.rejection_reason = cmd.reason
            return await self._finish(
                uow,
                AuditAction.SETTLEMENT_REJECTED,
                actor,
                order,
                settlement,
                before,
                cmd.model_dump(mode="json"),
                rejection_reason=cmd.reason,
            )

    # ==================== УДЕРЖАНИЯ И ИНЦИДЕНТЫ ====================

    async def add_deduction(self, cmd: AddDeductionCommand, actor: Actor) -> OrderAggregate:
        """
        Удержание из выплаты исполнителю

        Если расчёт уже создан, он пересчитывается новой ревизией.

        Raises:
            ValidationFailedError: Расчёт уже выплачен или отклонён
        """
        self._require_role(actor, UserRole.ADMIN)

        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            if order.status in (OrderStatus.CANCELLED, OrderStatus.CLOSED):
                raise ValidationFailedError(
                    "Удержание по отменённой или закрытой заявке невозможно",
                    field="order_id",
                    status=order.status,
                )

            current = await uow.settlements.get_current(order.id)
            if current is not None and not self.settlement_machine.is_mutable(current.status):
                raise ValidationFailedError(
                    f"Расчёт в статусе '{SettlementStatus.get_status_name(current.status)}' "
                    "нельзя пересчитать",
                    field="order_id",
                    settlement_status=current.status,
                )

            deduction = await uow.deductions.add(
                Deduction(
                    order_id=order.id,
                    deduction_type=cmd.deduction_type,
                    amount=cmd.amount,
                    reason=cmd.reason,
                    evidence_keys=cmd.evidence_keys,
                    created_by=actor.id,
                )
            )

            settlement = None
            if current is not None:
                settlement = await self._recalculate(uow, order, current)

            self._touch(order)
            await uow.orders.save(order)
            await self._audit(
                uow,
                AuditAction.DEDUCTION_ADDED,
                actor,
                order,
                "deduction",
                deduction.id,
                after_values={
                    "deduction_type": deduction.deduction_type,
                    "amount": deduction.amount,
                    "settlement": settlement_snapshot(settlement),
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(f"Заявка #{order.id}: удержание {cmd.amount} ({cmd.deduction_type})")
            return await self._build_aggregate(uow, order)

    async def resolve_incident(self, cmd: ResolveIncidentCommand, actor: Actor) -> OrderAggregate:
        """
        Решение по инциденту с грузом

        Подтверждённый инцидент удерживается из выплаты (пересчёт расчёта).
        Заморозка не снимается автоматически.
        """
        self._require_role(actor, UserRole.ADMIN)

        async with self._transaction() as uow:
            incident = await uow.incidents.get_or_raise(cmd.incident_id)
            target = IncidentStatus.CONFIRMED if cmd.confirmed else IncidentStatus.DISMISSED
            if incident.status != IncidentStatus.SUBMITTED:
                raise IllegalTransitionError("incident", incident.status, target, "решение уже принято")

            order = await uow.orders.get_for_update(incident.order_id)
            current = await uow.settlements.get_current(order.id)
            if (
                cmd.confirmed
                and current is not None
                and not self.settlement_machine.is_mutable(current.status)
            ):
                raise ValidationFailedError(
                    "Расчёт уже выплачен или отклонён, удержание невозможно",
                    field="incident_id",
                    settlement_status=current.status,
                )

            incident.status = target
            incident.deduction_amount = cmd.deduction_amount
            incident.resolution_note = cmd.note
            incident.resolved_by = actor.id
            incident.resolved_at = get_now()
            await uow.incidents.save(incident)

            settlement = None
            if cmd.confirmed and current is not None:
                settlement = await self._recalculate(uow, order, current)

            self._touch(order)
            await uow.orders.save(order)
            await self._audit(
                uow,
                AuditAction.INCIDENT_RESOLVED,
                actor,
                order,
                "incident",
                incident.id,
                before_status=IncidentStatus.SUBMITTED,
                after_status=incident.status,
                after_values={
                    "deduction_amount": incident.deduction_amount,
                    "settlement": settlement_snapshot(settlement),
                },
                payload=cmd.model_dump(mode="json"),
            )
            return await self._build_aggregate(uow, order, incident=incident)

    # ==================== ЧТЕНИЕ ====================

    async def get_settlement(self, settlement_id: int, actor: Actor) -> SettlementRead:
        """Расчёт по ID (администратор или исполнитель расчёта)"""
        async with self.db.get_session() as session:
            settlement = await UnitOfWork(session).settlements.get_or_raise(settlement_id)
            if actor.role != UserRole.ADMIN and settlement.helper_id != actor.id:
                raise UnauthorizedError("Расчёт недоступен", role=actor.role)
            return SettlementRead.model_validate(settlement)

    async def list_revisions(self, order_id: int, actor: Actor) -> list[SettlementRead]:
        """Все ревизии расчёта заявки, включая замещённые"""
        self._require_role(actor, UserRole.ADMIN)
        async with self.db.get_session() as session:
            revisions = await UnitOfWork(session).settlements.list_revisions(order_id)
            return [SettlementRead.model_validate(item) for item in revisions]

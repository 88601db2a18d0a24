"""
Сервис жизненного цикла заявки (бизнес-логика)

Каждая операция: загрузка заявки, проверка прав и перехода, изменение,
ровно одна запись аудита в той же транзакции, внешние вызовы после commit.
"""

import logging
from datetime import datetime

from helpme.core.config import Config
from helpme.core.constants import (
    ApplicationStatus,
    AuditAction,
    ClosingReportStatus,
    IntegrationAction,
    IntegrationChannel,
    NotificationEvent,
    OrderStatus,
    PaymentKind,
    PaymentStatus,
    SettlementStatus,
    UserRole,
)
from helpme.database.orm_database import ORMDatabase
from helpme.database.orm_models import (
    ClosingReport,
    IncidentReport,
    Order,
    OrderApplication,
    Payment,
)
from helpme.domain.cancellation_policy import CancellationPolicy
from helpme.domain.exceptions import (
    IllegalTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from helpme.domain.settlement_calculator import SettlementPolicy, estimate_order_amounts
from helpme.integrations.base import PaymentResult
from helpme.schemas.closing import (
    ApproveClosingCommand,
    RejectClosingCommand,
    SubmitClosingCommand,
    normalize_evidence_keys,
)
from helpme.schemas.order import (
    Actor,
    ApplyCommand,
    CancelOrderCommand,
    CheckInCommand,
    CloseOrderCommand,
    OrderCreateSchema,
    PaymentRequestCommand,
    PaymentResultCommand,
    SelectHelperCommand,
)
from helpme.schemas.read import AuditEntryRead, OrderAggregate, OrderHistory
from helpme.schemas.settlement import ReportIncidentCommand
from helpme.services.integration_dispatcher import IntegrationDispatcher
from helpme.services.unit_of_work import (
    SYSTEM_ACTOR,
    LifecycleServiceBase,
    UnitOfWork,
    order_snapshot,
    settlement_snapshot,
)
from helpme.utils.helpers import get_now


logger = logging.getLogger(__name__)

# Статусы заявки, в которых можно зарегистрировать инцидент с грузом
INCIDENT_STATUSES = (
    OrderStatus.IN_PROGRESS,
    OrderStatus.CLOSING_SUBMITTED,
    OrderStatus.FINAL_AMOUNT_CONFIRMED,
    OrderStatus.BALANCE_PAID,
)


class OrderLifecycleService(LifecycleServiceBase):
    """
    Сервис для управления жизненным циклом заявки

    Заказчик публикует заявку и оплачивает депозит, исполнители откликаются,
    заказчик выбирает одного, исполнитель отмечается на месте и сдаёт отчёт,
    заказчик подтверждает итог, после чего создаётся расчёт.
    """

    def __init__(
        self,
        db: ORMDatabase,
        dispatcher: IntegrationDispatcher,
        cancellation_policy: CancellationPolicy | None = None,
        max_applicants: int | None = None,
        **kwargs,
    ):
        """
        Инициализация сервиса

        Args:
            db: База данных
            dispatcher: Диспетчер outbox-задач
            cancellation_policy: Политика отмены (по умолчанию из конфигурации)
            max_applicants: Максимум откликов на заявку
        """
        super().__init__(db, dispatcher, **kwargs)
        self.cancellation_policy = cancellation_policy or CancellationPolicy.from_config()
        self.max_applicants = max_applicants or Config.MAX_APPLICANTS

        dispatcher.on_success(IntegrationAction.CAPTURE, self.handle_capture_result)
        dispatcher.on_success(IntegrationAction.REFUND, self.handle_refund_result)
        dispatcher.on_failure(IntegrationAction.CAPTURE, self.handle_capture_failure)
        dispatcher.on_failure(IntegrationAction.REFUND, self.handle_capture_failure)

    # ==================== СОЗДАНИЕ И ОПЛАТА ====================

    async def create_order(self, data: OrderCreateSchema, actor: Actor) -> OrderAggregate:
        """
        Создание заявки заказчиком

        Политика расчёта фиксируется в заявке: дальнейшие изменения
        конфигурации не влияют на уже созданные заявки.

        Args:
            data: Данные заявки
            actor: Заказчик

        Returns:
            Заявка в статусе pending_deposit
        """
        self._require_role(actor, UserRole.REQUESTER)

        async with self._transaction() as uow:
            requester = await uow.users.get_or_raise(actor.id)
            if requester.role != UserRole.REQUESTER or not requester.is_active:
                raise UnauthorizedError(
                    f"Участник {actor.id} не является активным заказчиком", role=requester.role
                )

            policy = SettlementPolicy.from_config(data.category)
            estimate = estimate_order_amounts(
                data.pricing_mode,
                data.unit_price,
                data.expected_box_count,
                data.is_urgent,
                policy,
            )

            order = Order(
                requester_id=actor.id,
                status=OrderStatus.PENDING_DEPOSIT,
                category=data.category,
                pricing_mode=data.pricing_mode,
                title=data.title,
                pickup_address=data.pickup_address,
                scheduled_start=data.scheduled_start,
                scheduled_end=data.scheduled_end,
                unit_price=data.unit_price,
                expected_box_count=data.expected_box_count,
                is_urgent=data.is_urgent,
                estimated_total=estimate.estimated_total,
                deposit_amount=estimate.deposit_amount,
                balance_amount=estimate.balance_amount,
                policy_snapshot=policy.to_snapshot(),
            )
            await uow.orders.add(order)

            await self._audit(
                uow,
                AuditAction.ORDER_CREATED,
                actor,
                order,
                "order",
                order.id,
                after_status=order.status,
                after_values=order_snapshot(order),
                payload=data.model_dump(mode="json"),
            )
            logger.info(
                f"Заявка #{order.id} создана заказчиком {actor.id}: "
                f"оценка {estimate.estimated_total}, депозит {estimate.deposit_amount}"
            )
            return await self._build_aggregate(uow, order)

    async def request_payment(self, cmd: PaymentRequestCommand, actor: Actor) -> OrderAggregate:
        """
        Запрос оплаты депозита или остатка

        Создаёт платёж в статусе requested и задачу capture для шлюза.
        Остаток, покрытый депозитом, не списывается: заявка сразу
        переходит в balance_paid, переплата возвращается.

        Args:
            cmd: Команда (kind = deposit | balance)
            actor: Заказчик или администратор

        Raises:
            IllegalTransitionError: Оплата недоступна в текущем статусе заявки
            ValidationFailedError: Уже есть неподтверждённый платёж этого вида
        """
        self._require_role(actor, UserRole.REQUESTER, UserRole.ADMIN)

        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)

            if cmd.kind == PaymentKind.DEPOSIT:
                required_status, target, amount = (
                    OrderStatus.PENDING_DEPOSIT,
                    OrderStatus.OPEN,
                    order.deposit_amount,
                )
            else:
                required_status, target, amount = (
                    OrderStatus.FINAL_AMOUNT_CONFIRMED,
                    OrderStatus.BALANCE_PAID,
                    order.balance_amount,
                )
            if order.status != required_status:
                raise IllegalTransitionError(
                    "order",
                    order.status,
                    target,
                    f"оплата '{cmd.kind}' недоступна в статусе "
                    f"'{OrderStatus.get_status_name(order.status)}'",
                )

            if cmd.kind == PaymentKind.BALANCE and amount == 0:
                return await self._settle_from_deposit(uow, order, cmd, actor)

            if await uow.payments.get_open(order.id, cmd.kind) is not None:
                raise ValidationFailedError(
                    "Платёж уже запрошен и ожидает подтверждения", field="kind", kind=cmd.kind
                )

            payment = await uow.payments.add(
                Payment(
                    order_id=order.id,
                    kind=cmd.kind,
                    amount=amount,
                    status=PaymentStatus.REQUESTED,
                )
            )
            await uow.enqueue(
                IntegrationChannel.PAYMENT,
                IntegrationAction.CAPTURE,
                {
                    "payment_id": payment.id,
                    "order_id": order.id,
                    "amount": amount,
                    "kind": cmd.kind,
                },
                order_id=order.id,
            )

            self._touch(order)
            await uow.orders.save(order)
            await self._audit(
                uow,
                AuditAction.PAYMENT_REQUESTED,
                actor,
                order,
                "payment",
                payment.id,
                after_status=payment.status,
                after_values={"kind": payment.kind, "amount": payment.amount},
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(f"Заявка #{order.id}: запрошен платёж {cmd.kind} на {amount}")
            return await self._build_aggregate(uow, order, payment=payment)

    async def request_deposit_payment(self, order_id: int, actor: Actor) -> OrderAggregate:
        return await self.request_payment(
            PaymentRequestCommand(order_id=order_id, kind=PaymentKind.DEPOSIT), actor
        )

    async def request_balance_payment(self, order_id: int, actor: Actor) -> OrderAggregate:
        return await self.request_payment(
            PaymentRequestCommand(order_id=order_id, kind=PaymentKind.BALANCE), actor
        )

    async def _settle_from_deposit(
        self, uow: UnitOfWork, order: Order, cmd: PaymentRequestCommand, actor: Actor
    ) -> OrderAggregate:
        """
        Остаток покрыт депозитом: заявка сразу переходит в balance_paid

        Списывать нечего. Если итог меньше оплаченного депозита,
        разница возвращается заказчику.
        """
        # Оплата не нужна, переход выполняет система
        before = self._transition_order(order, OrderStatus.BALANCE_PAID, SYSTEM_ACTOR)
        overpaid = max(0, order.deposit_paid_amount - order.total_amount)

        refund = None
        if overpaid > 0:
            refund = await self._add_refund(uow, order, overpaid)
            order.refund_amount = overpaid
        await uow.orders.save(order)

        await self._audit(
            uow,
            AuditAction.BALANCE_COVERED,
            actor,
            order,
            "order",
            order.id,
            before_status=before,
            after_status=order.status,
            after_values={
                "total_amount": order.total_amount,
                "deposit_paid_amount": order.deposit_paid_amount,
                "refund_amount": overpaid,
            },
            payload=cmd.model_dump(mode="json"),
        )
        logger.info(
            f"Заявка #{order.id}: остаток покрыт депозитом {order.deposit_paid_amount}, "
            f"итог {order.total_amount}, возврат {overpaid}"
        )
        return await self._build_aggregate(uow, order, payment=refund)

    async def _add_refund(self, uow: UnitOfWork, order: Order, amount: int) -> Payment:
        """Платёж-возврат и задача refund для шлюза"""
        refund = await uow.payments.add(
            Payment(
                order_id=order.id,
                kind=PaymentKind.REFUND,
                amount=amount,
                status=PaymentStatus.REQUESTED,
            )
        )
        await uow.enqueue(
            IntegrationChannel.PAYMENT,
            IntegrationAction.REFUND,
            {"payment_id": refund.id, "order_id": order.id, "amount": amount},
            order_id=order.id,
        )
        return refund

    async def confirm_payment(self, cmd: PaymentResultCommand, actor: Actor) -> OrderAggregate:
        """
        Подтверждение платежа (вебхук шлюза или администратор)

        Депозит переводит заявку pending_deposit → open,
        остаток final_amount_confirmed → balance_paid,
        подтверждённый возврат помечается refunded.

        Raises:
            IllegalTransitionError: Платёж уже обработан или заявка не в нужном статусе
        """
        self._require_role(actor, UserRole.SYSTEM, UserRole.ADMIN)

        async with self._transaction() as uow:
            payment = await uow.payments.get_or_raise(cmd.payment_id)
            settled = (
                PaymentStatus.REFUNDED if payment.kind == PaymentKind.REFUND else PaymentStatus.CAPTURED
            )
            if payment.status != PaymentStatus.REQUESTED:
                raise IllegalTransitionError(
                    "payment", payment.status, settled, "платёж уже обработан"
                )
            order = await uow.orders.get_for_update(payment.order_id)
            before = order.status

            if payment.kind == PaymentKind.DEPOSIT:
                self._transition_order(order, OrderStatus.OPEN, actor)
                order.deposit_paid_amount = payment.amount
                await uow.notify(order.requester_id, NotificationEvent.ORDER_OPENED, order.id)
            elif payment.kind == PaymentKind.BALANCE:
                self._transition_order(order, OrderStatus.BALANCE_PAID, actor)
            else:
                self._touch(order)

            payment.status = settled
            payment.reference = cmd.reference
            payment.confirmed_at = get_now()
            await uow.orders.save(order)

            await self._audit(
                uow,
                AuditAction.PAYMENT_CONFIRMED,
                actor,
                order,
                "payment",
                payment.id,
                before_status=before,
                after_status=order.status,
                after_values={
                    "kind": payment.kind,
                    "amount": payment.amount,
                    "reference": payment.reference,
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(f"Платёж #{payment.id} ({payment.kind}) по заявке #{order.id} подтверждён")
            return await self._build_aggregate(uow, order, payment=payment)

    async def fail_payment(self, cmd: PaymentResultCommand, actor: Actor) -> OrderAggregate:
        """
        Отметка неуспешного платежа

        Статус заявки не меняется: заказчик может запросить оплату повторно.
        """
        self._require_role(actor, UserRole.SYSTEM, UserRole.ADMIN)

        async with self._transaction() as uow:
            payment = await uow.payments.get_or_raise(cmd.payment_id)
            if payment.status != PaymentStatus.REQUESTED:
                raise IllegalTransitionError(
                    "payment", payment.status, PaymentStatus.FAILED, "платёж уже обработан"
                )
            order = await uow.orders.get_for_update(payment.order_id)

            payment.status = PaymentStatus.FAILED
            payment.failure_reason = cmd.failure_reason or "Платёж отклонён"
            self._touch(order)
            await uow.orders.save(order)

            await self._audit(
                uow,
                AuditAction.PAYMENT_FAILED,
                actor,
                order,
                "payment",
                payment.id,
                before_status=PaymentStatus.REQUESTED,
                after_status=PaymentStatus.FAILED,
                after_values={"kind": payment.kind, "reason": payment.failure_reason},
                payload=cmd.model_dump(mode="json"),
            )
            logger.warning(
                f"Платёж #{payment.id} по заявке #{order.id} не прошёл: {payment.failure_reason}"
            )
            return await self._build_aggregate(uow, order, payment=payment)

    async def reverse_capture(self, cmd: PaymentResultCommand, actor: Actor) -> OrderAggregate | None:
        """
        Возврат денег, списанных шлюзом после закрытия платежа

        Capture мог завершиться уже после отмены заявки: платёж к этому
        моменту закрыт как failed, но деньги списаны. Платёж отмечается
        captured, на ту же сумму создаётся возврат.

        Returns:
            None, если возвращать нечего (платёж уже подтверждён или сам является возвратом)
        """
        self._require_role(actor, UserRole.SYSTEM, UserRole.ADMIN)

        async with self._transaction() as uow:
            payment = await uow.payments.get_or_raise(cmd.payment_id)
            if payment.kind == PaymentKind.REFUND or payment.status == PaymentStatus.CAPTURED:
                logger.warning(f"Платёж #{payment.id} ({payment.status}) не требует возврата")
                return None
            order = await uow.orders.get_for_update(payment.order_id)
            before = payment.status

            payment.status = PaymentStatus.CAPTURED
            payment.reference = cmd.reference
            payment.confirmed_at = get_now()
            refund = await self._add_refund(uow, order, payment.amount)
            order.refund_amount += payment.amount
            self._touch(order)
            await uow.orders.save(order)

            await self._audit(
                uow,
                AuditAction.PAYMENT_REVERSED,
                actor,
                order,
                "payment",
                payment.id,
                before_status=before,
                after_status=payment.status,
                after_values={
                    "kind": payment.kind,
                    "amount": payment.amount,
                    "reference": payment.reference,
                    "refund_payment_id": refund.id,
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.warning(
                f"Платёж #{payment.id} списан после закрытия, заявка #{order.id} "
                f"({order.status}): возврат {payment.amount}"
            )
            return await self._build_aggregate(uow, order, payment=refund)

    async def handle_capture_result(self, payload: dict, result: PaymentResult) -> None:
        """Обработчик успешного capture от диспетчера"""
        cmd = PaymentResultCommand(payment_id=payload["payment_id"], reference=result.reference)
        try:
            await self.confirm_payment(cmd, SYSTEM_ACTOR)
        except IllegalTransitionError as e:
            # Заявка успела уйти из ожидаемого статуса (например, отменена), деньги возвращаются
            logger.warning(f"Результат платежа #{payload['payment_id']} не применён: {e.message}")
            await self.reverse_capture(cmd, SYSTEM_ACTOR)

    async def handle_refund_result(self, payload: dict, result: PaymentResult) -> None:
        """Обработчик успешного refund от диспетчера"""
        try:
            await self.confirm_payment(
                PaymentResultCommand(payment_id=payload["payment_id"], reference=result.reference),
                SYSTEM_ACTOR,
            )
        except IllegalTransitionError as e:
            logger.warning(f"Результат возврата #{payload['payment_id']} не применён: {e.message}")

    async def handle_capture_failure(self, payload: dict, error: str) -> None:
        """Обработчик окончательного сбоя capture/refund"""
        try:
            await self.fail_payment(
                PaymentResultCommand(payment_id=payload["payment_id"], failure_reason=error[:500]),
                SYSTEM_ACTOR,
            )
        except IllegalTransitionError as e:
            logger.warning(f"Сбой платежа #{payload['payment_id']} не применён: {e.message}")

    # ==================== ПОДБОР ИСПОЛНИТЕЛЯ ====================

    async def apply_to_order(self, cmd: ApplyCommand, actor: Actor) -> OrderAggregate:
        """
        Отклик исполнителя на открытую заявку

        Raises:
            ValidationFailedError: Заявка закрыта для откликов, повторный отклик
                или достигнут лимит откликов
        """
        self._require_role(actor, UserRole.HELPER)

        async with self._transaction() as uow:
            helper = await uow.users.get_or_raise(actor.id)
            if helper.role != UserRole.HELPER or not helper.is_active:
                raise UnauthorizedError(
                    f"Участник {actor.id} не является активным исполнителем", role=helper.role
                )

            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            if order.status != OrderStatus.OPEN:
                raise ValidationFailedError(
                    "Заявка не принимает отклики", field="order_id", status=order.status
                )
            if await uow.applications.get_for_helper(order.id, actor.id) is not None:
                raise ValidationFailedError("Вы уже откликнулись на эту заявку", field="order_id")
            if await uow.applications.count_active(order.id) >= self.max_applicants:
                raise ValidationFailedError(
                    f"На заявку уже откликнулись {self.max_applicants} исполнителя",
                    field="order_id",
                    max_applicants=self.max_applicants,
                )

            application = await uow.applications.add(
                OrderApplication(
                    order_id=order.id,
                    helper_id=actor.id,
                    status=ApplicationStatus.APPLIED,
                    message=cmd.message,
                )
            )
            # Отклики сериализуются через версию заявки
            self._touch(order)
            await uow.orders.save(order)

            await uow.notify(order.requester_id, NotificationEvent.NEW_APPLICATION, order.id)
            await self._audit(
                uow,
                AuditAction.HELPER_APPLIED,
                actor,
                order,
                "application",
                application.id,
                after_status=application.status,
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(f"Исполнитель {actor.id} откликнулся на заявку #{order.id}")
            return await self._build_aggregate(uow, order)

    async def select_helper(self, cmd: SelectHelperCommand, actor: Actor) -> OrderAggregate:
        """
        Выбор исполнителя заказчиком

        Побеждает ровно один отклик, остальные отклоняются в той же транзакции.
        Второй выбор по той же заявке отклоняется графом переходов
        (scheduled → scheduled недопустим) или конфликтом версий.
        """
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)
            before = self._transition_order(order, OrderStatus.SCHEDULED, actor)

            application = await uow.applications.get_or_raise(cmd.application_id)
            if application.order_id != order.id:
                raise ValidationFailedError(
                    "Отклик относится к другой заявке", field="application_id"
                )
            if application.status != ApplicationStatus.APPLIED:
                raise ValidationFailedError(
                    "Отклик уже обработан", field="application_id", status=application.status
                )

            now = get_now()
            application.status = ApplicationStatus.SELECTED
            application.decided_at = now
            order.assigned_helper_id = application.helper_id

            rejected_ids = []
            for other in await uow.applications.list_for_order(order.id):
                if other.id == application.id or other.status != ApplicationStatus.APPLIED:
                    continue
                other.status = ApplicationStatus.REJECTED
                other.rejection_reason = "Выбран другой исполнитель"
                other.decided_at = now
                rejected_ids.append(other.helper_id)
                await uow.notify(other.helper_id, NotificationEvent.APPLICATION_REJECTED, order.id)

            await uow.orders.save(order)
            await uow.notify(application.helper_id, NotificationEvent.HELPER_SELECTED, order.id)
            await self._audit(
                uow,
                AuditAction.HELPER_SELECTED,
                actor,
                order,
                "order",
                order.id,
                before_status=before,
                after_status=order.status,
                after_values={
                    "assigned_helper_id": order.assigned_helper_id,
                    "application_id": application.id,
                    "rejected_helper_ids": rejected_ids,
                    "version": order.version,
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(
                f"Заявка #{order.id}: выбран исполнитель {order.assigned_helper_id}, "
                f"отклонено откликов: {len(rejected_ids)}"
            )
            return await self._build_aggregate(uow, order)

    async def check_in(self, cmd: CheckInCommand, actor: Actor) -> OrderAggregate:
        """Check-in назначенного исполнителя на месте"""
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_assigned_helper(order, actor)
            before = self._transition_order(order, OrderStatus.IN_PROGRESS, actor)
            order.checked_in_at = get_now()
            await uow.orders.save(order)

            await uow.notify(order.requester_id, NotificationEvent.HELPER_CHECKED_IN, order.id)
            await self._audit(
                uow,
                AuditAction.CHECKED_IN,
                actor,
                order,
                "order",
                order.id,
                before_status=before,
                after_status=order.status,
                payload=cmd.model_dump(mode="json"),
            )
            return await self._build_aggregate(uow, order)

    # ==================== ЗАКРЫТИЕ ====================

    async def submit_closing(self, cmd: SubmitClosingCommand, actor: Actor) -> OrderAggregate:
        """
        Отправка отчёта о закрытии назначенным исполнителем

        Каждая отправка создаёт новую ревизию отчёта.

        Raises:
            ValidationFailedError: Нет файлов-доказательств
        """
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_assigned_helper(order, actor)
            try:
                evidence_keys = normalize_evidence_keys(cmd.evidence_keys)
            except ValueError as e:
                raise ValidationFailedError(str(e), field="evidence_keys") from e

            before = self._transition_order(order, OrderStatus.CLOSING_SUBMITTED, actor)

            report = await uow.closing_reports.add(
                ClosingReport(
                    order_id=order.id,
                    helper_id=order.assigned_helper_id,
                    revision=await uow.closing_reports.next_revision(order.id),
                    status=ClosingReportStatus.SUBMITTED,
                    delivered_count=cmd.delivered_count,
                    returned_count=cmd.returned_count,
                    other_count=cmd.other_count,
                    extra_costs=[item.model_dump() for item in cmd.extra_costs],
                    evidence_keys=evidence_keys,
                    memo=cmd.memo,
                    revision_note=cmd.revision_note,
                    submitted_at=get_now(),
                )
            )
            await uow.orders.save(order)

            await uow.notify(order.requester_id, NotificationEvent.CLOSING_SUBMITTED, order.id)
            await self._audit(
                uow,
                AuditAction.CLOSING_SUBMITTED,
                actor,
                order,
                "closing_report",
                report.id,
                before_status=before,
                after_status=order.status,
                after_values={
                    "revision": report.revision,
                    "delivered_count": report.delivered_count,
                    "returned_count": report.returned_count,
                    "other_count": report.other_count,
                    "extra_costs": report.extra_costs,
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(f"Заявка #{order.id}: отчёт о закрытии, ревизия {report.revision}")
            return await self._build_aggregate(uow, order)

    async def approve_closing(self, cmd: ApproveClosingCommand, actor: Actor) -> OrderAggregate:
        """
        Подтверждение отчёта заказчиком и создание расчёта

        Повторное подтверждение отклоняется графом переходов,
        второй расчёт не создаётся.
        """
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)
            before = self._transition_order(order, OrderStatus.FINAL_AMOUNT_CONFIRMED, actor)

            existing = await uow.settlements.get_current(order.id)
            if existing is not None:
                raise IllegalTransitionError(
                    "settlement", existing.status, SettlementStatus.PENDING, "расчёт уже создан"
                )

            report = await uow.closing_reports.get_active(order.id)
            if report is None or report.status != ClosingReportStatus.SUBMITTED:
                raise ValidationFailedError("Нет отчёта, ожидающего подтверждения")

            breakdown = await self._calculate(uow, order, report)
            settlement = await uow.settlements.add(
                self._settlement_from_breakdown(order, report, breakdown)
            )

            report.status = ClosingReportStatus.APPROVED
            report.decided_at = get_now()
            report.decided_by = actor.id
            order.total_amount = settlement.final_total
            order.balance_amount = max(0, settlement.final_total - order.deposit_paid_amount)
            await uow.orders.save(order)

            await uow.notify(report.helper_id, NotificationEvent.CLOSING_APPROVED, order.id)
            await self._audit(
                uow,
                AuditAction.CLOSING_APPROVED,
                actor,
                order,
                "order",
                order.id,
                before_status=before,
                after_status=order.status,
                after_values={
                    "order": order_snapshot(order),
                    "settlement": settlement_snapshot(settlement),
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(
                f"Заявка #{order.id}: итог {settlement.final_total}, "
                f"выплата исполнителю {settlement.driver_payout}"
            )
            return await self._build_aggregate(uow, order)

    async def reject_closing(self, cmd: RejectClosingCommand, actor: Actor) -> OrderAggregate:
        """Отклонение отчёта заказчиком: заявка возвращается в работу"""
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)
            before = self._transition_order(order, OrderStatus.IN_PROGRESS, actor)

            report = await uow.closing_reports.get_active(order.id)
            if report is None or report.status != ClosingReportStatus.SUBMITTED:
                raise ValidationFailedError("Нет отчёта, ожидающего подтверждения")

            report.status = ClosingReportStatus.REJECTED
            report.rejection_reason = cmd.reason
            report.rejection_category = cmd.category
            report.decided_at = get_now()
            report.decided_by = actor.id
            await uow.orders.save(order)

            await uow.notify(
                report.helper_id, NotificationEvent.CLOSING_REJECTED, order.id, reason=cmd.reason
            )
            await self._audit(
                uow,
                AuditAction.CLOSING_REJECTED,
                actor,
                order,
                "closing_report",
                report.id,
                before_status=before,
                after_status=order.status,
                after_values={"revision": report.revision, "reason": cmd.reason},
                payload=cmd.model_dump(mode="json"),
            )
            return await self._build_aggregate(uow, order)

    # ==================== ОТМЕНА И ЗАВЕРШЕНИЕ ====================

    async def cancel_order(self, cmd: CancelOrderCommand, actor: Actor) -> OrderAggregate:
        """
        Отмена заявки

        Raises:
            CancellationPolicyError: Отмена после выбора исполнителя запрещена политикой
            IllegalTransitionError: Заявка уже отменена или закрыта
        """
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)

            if self.order_machine.is_terminal_state(order.status):
                self._transition_order(order, OrderStatus.CANCELLED, actor)

            decision = self.cancellation_policy.evaluate(
                order.id, order.status, order.deposit_paid_amount
            )
            before = self._transition_order(
                order, OrderStatus.CANCELLED, actor, allow_policy_gated=decision.post_selection
            )

            now = get_now()
            for application in await uow.applications.list_for_order(order.id):
                if application.status == ApplicationStatus.APPLIED:
                    application.status = ApplicationStatus.REJECTED
                    application.rejection_reason = "Заявка отменена"
                    application.decided_at = now

            open_deposit = await uow.payments.get_open(order.id, PaymentKind.DEPOSIT)
            if open_deposit is not None:
                open_deposit.status = PaymentStatus.FAILED
                open_deposit.failure_reason = "Заявка отменена"

            refund = None
            if decision.refund_amount > 0:
                refund = await self._add_refund(uow, order, decision.refund_amount)

            order.refund_amount = decision.refund_amount
            order.cancel_reason = cmd.reason
            order.cancelled_at = now
            await uow.orders.save(order)

            await uow.notify(order.requester_id, NotificationEvent.ORDER_CANCELLED, order.id)
            await uow.notify(order.assigned_helper_id, NotificationEvent.ORDER_CANCELLED, order.id)
            await self._audit(
                uow,
                AuditAction.ORDER_CANCELLED,
                actor,
                order,
                "order",
                order.id,
                before_status=before,
                after_status=order.status,
                after_values={
                    "refund_amount": decision.refund_amount,
                    "post_selection": decision.post_selection,
                    "reason": cmd.reason,
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.info(
                f"Заявка #{order.id} отменена из статуса {before}, возврат {decision.refund_amount}"
            )
            return await self._build_aggregate(uow, order, payment=refund)

    async def close_order(self, cmd: CloseOrderCommand, actor: Actor) -> OrderAggregate:
        """Закрытие заявки после выплаты исполнителю"""
        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            before = self._transition_order(order, OrderStatus.CLOSED, actor)
            order.closed_at = get_now()
            await uow.orders.save(order)

            await self._audit(
                uow,
                AuditAction.ORDER_CLOSED,
                actor,
                order,
                "order",
                order.id,
                before_status=before,
                after_status=order.status,
                payload=cmd.model_dump(mode="json"),
            )
            return await self._build_aggregate(uow, order)

    # ==================== ИНЦИДЕНТЫ ====================

    async def report_incident(self, cmd: ReportIncidentCommand, actor: Actor) -> OrderAggregate:
        """
        Регистрация инцидента с грузом

        Действующий расчёт автоматически замораживается до решения администратора.
        """
        self._require_role(actor, UserRole.REQUESTER, UserRole.ADMIN)

        async with self._transaction() as uow:
            order = await uow.orders.get_for_update(cmd.order_id, cmd.expected_version)
            self._require_owner(order, actor)
            if order.status not in INCIDENT_STATUSES:
                raise ValidationFailedError(
                    "Инцидент можно зарегистрировать только по заявке в работе или на расчёте",
                    field="order_id",
                    status=order.status,
                )

            incident = await uow.incidents.add(
                IncidentReport(
                    order_id=order.id,
                    reported_by=actor.id,
                    incident_type=cmd.incident_type,
                    description=cmd.description,
                    evidence_keys=cmd.evidence_keys,
                    requested_amount=cmd.requested_amount,
                )
            )

            settlement = await uow.settlements.get_current(order.id)
            held_from = None
            if settlement is not None and settlement.status in self.settlement_machine.HOLDABLE:
                held_from = self._transition_settlement(
                    settlement, SettlementStatus.HOLD, SYSTEM_ACTOR
                )
                settlement.held_from_status = held_from
                settlement.hold_reason = f"Инцидент #{incident.id}: {cmd.incident_type}"
                settlement.held_at = get_now()
                await uow.settlements.save(settlement)

            self._touch(order)
            await uow.orders.save(order)

            await uow.notify(order.assigned_helper_id, NotificationEvent.INCIDENT_REPORTED, order.id)
            await self._audit(
                uow,
                AuditAction.INCIDENT_REPORTED,
                actor,
                order,
                "incident",
                incident.id,
                after_status=incident.status,
                after_values={
                    "incident_type": incident.incident_type,
                    "requested_amount": incident.requested_amount,
                    "settlement_held_from": held_from,
                    "settlement": settlement_snapshot(settlement),
                },
                payload=cmd.model_dump(mode="json"),
            )
            logger.warning(f"Заявка #{order.id}: инцидент #{incident.id} ({cmd.incident_type})")
            return await self._build_aggregate(uow, order, incident=incident)

    # ==================== ЧТЕНИЕ ====================

    async def _check_read_access(self, uow: UnitOfWork, order: Order, actor: Actor) -> None:
        if actor.role in (UserRole.ADMIN, UserRole.SYSTEM):
            return
        if actor.role == UserRole.REQUESTER:
            self._require_owner(order, actor)
            return
        if order.assigned_helper_id == actor.id:
            return
        if await uow.applications.get_for_helper(order.id, actor.id) is None:
            raise UnauthorizedError(
                f"Исполнитель {actor.id} не связан с заявкой #{order.id}", role=actor.role
            )

    async def get_aggregate(self, order_id: int, actor: Actor) -> OrderAggregate:
        """Заявка со связанными данными"""
        async with self.db.get_session() as session:
            uow = UnitOfWork(session)
            order = await uow.orders.get_or_raise(order_id)
            await self._check_read_access(uow, order, actor)
            return await self._build_aggregate(uow, order)

    async def get_history(
        self, order_id: int, actor: Actor, as_of: datetime | None = None
    ) -> OrderHistory:
        """
        История заявки из журнала аудита

        Args:
            order_id: ID заявки
            actor: Участник
            as_of: Восстановить историю и статус на этот момент

        Returns:
            Записи журнала и статус заявки на момент as_of (или текущий)
        """
        async with self.db.get_session() as session:
            uow = UnitOfWork(session)
            order = await uow.orders.get_or_raise(order_id)
            if actor.role == UserRole.HELPER:
                raise UnauthorizedError("История заявки недоступна исполнителю", role=actor.role)
            await self._check_read_access(uow, order, actor)

            entries = await uow.audit.history(order_id, until=as_of)
            status = (
                await uow.audit.status_as_of(order_id, as_of) if as_of is not None else order.status
            )
            return OrderHistory(
                order_id=order_id,
                status_as_of=status,
                entries=[AuditEntryRead.model_validate(entry) for entry in entries],
            )

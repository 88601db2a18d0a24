"""
SQLAlchemy ORM модели для базы данных
"""

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

from helpme.core.constants import (
    ApplicationStatus,
    ClosingReportStatus,
    DeductionType,
    IncidentStatus,
    IntegrationAction,
    IntegrationStatus,
    OrderCategory,
    OrderStatus,
    PaymentKind,
    PaymentStatus,
    PricingMode,
    SettlementStatus,
    UserRole,
)
from helpme.repositories.exceptions import AppendOnlyViolationError
from helpme.utils.helpers import get_now


# Базовый класс для всех моделей
Base = declarative_base()


def _in(column: str, values: list[str]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} IN ({quoted})"


class User(Base):
    """Участник: заказчик, исполнитель или администратор"""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    telegram_chat_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)

    __table_args__ = (
        Index("idx_users_role", "role"),
        CheckConstraint(
            _in("role", [UserRole.REQUESTER, UserRole.HELPER, UserRole.ADMIN]),
            name="chk_users_role",
        ),
    )


class Order(Base):
    """Заявка на доставку"""

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requester_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_helper_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=OrderStatus.PENDING_DEPOSIT
    )
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    pricing_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    pickup_address: Mapped[str] = mapped_column(String(500), nullable=False)
    scheduled_start: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_end: Mapped[date] = mapped_column(Date, nullable=False)
    unit_price: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_box_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Денежные поля (воны)
    estimated_total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deposit_paid_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    refund_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Политика расчёта на момент создания
    policy_snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    checked_in_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=get_now, onupdate=get_now
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_orders_status", "status"),
        Index("idx_orders_requester_id", "requester_id"),
        Index("idx_orders_assigned_helper_id", "assigned_helper_id"),
        CheckConstraint(_in("status", OrderStatus.all_statuses()), name="chk_orders_status"),
        CheckConstraint(
            _in("category", OrderCategory.all_categories()), name="chk_orders_category"
        ),
        CheckConstraint(_in("pricing_mode", PricingMode.all_modes()), name="chk_orders_pricing"),
        CheckConstraint("scheduled_end >= scheduled_start", name="chk_orders_schedule"),
        CheckConstraint(
            "unit_price >= 0 AND expected_box_count >= 0 AND estimated_total >= 0 "
            "AND deposit_amount >= 0 AND deposit_paid_amount >= 0 AND balance_amount >= 0 "
            "AND refund_amount >= 0 AND (total_amount IS NULL OR total_amount >= 0)",
            name="chk_orders_money",
        ),
        CheckConstraint(
            "assigned_helper_id IS NULL OR "
            + _in(
                "status",
                [s for s in OrderStatus.all_statuses() if s not in OrderStatus.PRE_MATCHING],
            ),
            name="chk_orders_helper_assignment",
        ),
    )


class OrderApplication(Base):
    """Отклик исполнителя на заявку"""

    __tablename__ = "order_applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    helper_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApplicationStatus.APPLIED
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", "helper_id", name="uq_applications_order_helper"),
        Index("idx_applications_order_id", "order_id"),
        CheckConstraint(
            _in("status", ApplicationStatus.all_statuses()), name="chk_applications_status"
        ),
    )


class ClosingReport(Base):
    """Отчёт о закрытии заявки (ревизия)"""

    __tablename__ = "closing_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    helper_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ClosingReportStatus.SUBMITTED
    )
    delivered_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    returned_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    other_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extra_costs: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    evidence_keys: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    revision_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    decided_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("order_id", "revision", name="uq_closing_reports_revision"),
        Index("idx_closing_reports_order_id", "order_id"),
        CheckConstraint(
            _in("status", ClosingReportStatus.all_statuses()), name="chk_closing_reports_status"
        ),
        CheckConstraint(
            "delivered_count >= 0 AND returned_count >= 0 AND other_count >= 0",
            name="chk_closing_reports_counts",
        ),
    )


class Settlement(Base):
    """
    Расчёт с исполнителем

    Пересчёт не перезаписывает запись: текущая помечается superseded,
    создаётся новая ревизия с is_current=True.
    """

    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    helper_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    closing_report_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("closing_reports.id"), nullable=False
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.PENDING
    )
    held_from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    hold_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    base_supply: Mapped[int] = mapped_column(Integer, nullable=False)
    other_supply: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    urgent_fee_supply: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extra_supply: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_supply: Mapped[int] = mapped_column(Integer, nullable=False)
    vat: Mapped[int] = mapped_column(Integer, nullable=False)
    final_total: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_fee_rate: Mapped[str] = mapped_column(String(10), nullable=False)
    platform_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    deductions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cargo_incident_deduction: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    raw_payout: Mapped[int] = mapped_column(Integer, nullable=False)
    driver_payout: Mapped[int] = mapped_column(Integer, nullable=False)
    has_anomaly: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    anomaly_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    payout_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    held_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    superseded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("order_id", "revision", name="uq_settlements_revision"),
        Index("idx_settlements_order_current", "order_id", "is_current"),
        Index("idx_settlements_status", "status"),
        CheckConstraint(
            _in("status", SettlementStatus.all_statuses()), name="chk_settlements_status"
        ),
        CheckConstraint("final_total = final_supply + vat", name="chk_settlements_total"),
        CheckConstraint(
            "driver_payout >= 0 AND platform_fee >= 0 AND deductions >= 0 "
            "AND cargo_incident_deduction >= 0",
            name="chk_settlements_money",
        ),
    )


class Deduction(Base):
    """Удержание из выплаты исполнителю"""

    __tablename__ = "deductions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    deduction_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_keys: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)

    __table_args__ = (
        Index("idx_deductions_order_id", "order_id"),
        CheckConstraint(
            _in("deduction_type", DeductionType.all_types()), name="chk_deductions_type"
        ),
        CheckConstraint("amount > 0", name="chk_deductions_amount"),
    )


class IncidentReport(Base):
    """Инцидент с грузом (повреждение, утеря)"""

    __tablename__ = "incident_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    reported_by: Mapped[int] = mapped_column(Integer, nullable=False)
    incident_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_keys: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    requested_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IncidentStatus.SUBMITTED
    )
    deduction_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    resolved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_incidents_order_id", "order_id"),
        CheckConstraint(_in("status", IncidentStatus.all_statuses()), name="chk_incidents_status"),
        CheckConstraint(
            "requested_amount >= 0 AND deduction_amount >= 0", name="chk_incidents_amounts"
        ),
    )


class Payment(Base):
    """Платёж заказчика (депозит, остаток) или возврат"""

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.REQUESTED
    )
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_payments_order_id", "order_id"),
        CheckConstraint(_in("kind", PaymentKind.all_kinds()), name="chk_payments_kind"),
        CheckConstraint(_in("status", PaymentStatus.all_statuses()), name="chk_payments_status"),
        CheckConstraint("amount >= 0", name="chk_payments_amount"),
    )


class AuditEntry(Base):
    """
    Запись журнала аудита

    Только добавление: изменение и удаление запрещены на уровне ORM.
    """

    __tablename__ = "audit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    actor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    before_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    after_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    order_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    before_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    after_values: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    payload_digest: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)

    __table_args__ = (
        Index("idx_audit_entries_order_created", "order_id", "created_at"),
        Index("idx_audit_entries_action", "action"),
    )


class IntegrationEvent(Base):
    """
    Задача внешней интеграции (outbox)

    Пишется в той же транзакции, что и изменение статуса,
    выполняется после commit.
    """

    __tablename__ = "integration_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IntegrationStatus.PENDING
    )
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    next_retry_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Ссылка шлюза: вызов выполнен, обработчик результата ещё не отработал
    result_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=get_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=get_now, onupdate=get_now
    )

    __table_args__ = (
        Index("idx_integration_events_status_retry", "status", "next_retry_at"),
        CheckConstraint(
            _in("action", IntegrationAction.all_actions()), name="chk_integration_events_action"
        ),
        CheckConstraint(
            _in("status", IntegrationStatus.all_statuses()), name="chk_integration_events_status"
        ),
    )


@event.listens_for(AuditEntry, "before_update")
def _forbid_audit_update(mapper, connection, target):
    raise AppendOnlyViolationError(f"Запись аудита #{target.id} нельзя изменить")


@event.listens_for(AuditEntry, "before_delete")
def _forbid_audit_delete(mapper, connection, target):
    raise AppendOnlyViolationError(f"Запись аудита #{target.id} нельзя удалить")

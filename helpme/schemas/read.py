"""Pydantic схемы для чтения (ответы API и результат операций)"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class ReadSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class OrderRead(ReadSchema):
    id: int
    requester_id: int
    assigned_helper_id: int | None
    status: str
    category: str
    pricing_mode: str
    title: str
    pickup_address: str
    scheduled_start: date
    scheduled_end: date
    unit_price: int
    expected_box_count: int
    is_urgent: bool
    estimated_total: int
    deposit_amount: int
    deposit_paid_amount: int
    balance_amount: int
    total_amount: int | None
    refund_amount: int
    cancel_reason: str | None
    checked_in_at: datetime | None
    created_at: datetime
    version: int


class ApplicationRead(ReadSchema):
    id: int
    order_id: int
    helper_id: int
    status: str
    message: str | None
    rejection_reason: str | None
    created_at: datetime


class ClosingReportRead(ReadSchema):
    id: int
    order_id: int
    helper_id: int
    revision: int
    status: str
    delivered_count: int
    returned_count: int
    other_count: int
    extra_costs: list[dict[str, Any]]
    evidence_keys: list[str]
    memo: str | None
    rejection_reason: str | None
    rejection_category: str | None
    submitted_at: datetime


class SettlementRead(ReadSchema):
    id: int
    order_id: int
    helper_id: int
    revision: int
    is_current: bool
    status: str
    held_from_status: str | None
    hold_reason: str | None
    base_supply: int
    other_supply: int
    urgent_fee_supply: int
    extra_supply: int
    final_supply: int
    vat: int
    final_total: int
    platform_fee_rate: str
    platform_fee: int
    deductions: int
    cargo_incident_deduction: int
    raw_payout: int
    driver_payout: int
    has_anomaly: bool
    anomaly_reason: str | None
    paid_at: datetime | None
    version: int


class PaymentRead(ReadSchema):
    id: int
    order_id: int
    kind: str
    amount: int
    status: str
    reference: str | None


class IncidentRead(ReadSchema):
    id: int
    order_id: int
    incident_type: str
    description: str
    requested_amount: int
    status: str
    deduction_amount: int


class AuditEntryRead(ReadSchema):
    id: int
    order_id: int | None
    actor_id: int | None
    actor_role: str
    action: str
    entity_type: str
    entity_id: int | None
    before_status: str | None
    after_status: str | None
    order_status: str | None
    before_values: dict[str, Any] | None
    after_values: dict[str, Any] | None
    payload_digest: str
    created_at: datetime


class OrderAggregate(BaseModel):
    """Заявка вместе со связанными данными после операции"""

    order: OrderRead
    settlement: SettlementRead | None = None
    closing_report: ClosingReportRead | None = None
    applications: list[ApplicationRead] = []
    payment: PaymentRead | None = None
    incident: IncidentRead | None = None


class OrderHistory(BaseModel):
    """История заявки из журнала аудита"""

    order_id: int
    status_as_of: str | None = None
    entries: list[AuditEntryRead]

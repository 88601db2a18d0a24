"""Pydantic схемы административных действий с расчётами"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpme.core.config import MAX_EVIDENCE_KEYS, MAX_MEMO_LENGTH, MAX_REASON_LENGTH
from helpme.core.constants import DeductionType
from helpme.schemas.closing import normalize_evidence_keys
from helpme.schemas.order import OrderCommand


class SettlementCommand(BaseModel):
    """Базовая команда над расчётом"""

    model_config = ConfigDict(str_strip_whitespace=True)

    settlement_id: int = Field(..., gt=0)
    expected_version: int | None = Field(None, ge=1, description="Версия расчёта у клиента")


class HoldSettlementCommand(SettlementCommand):
    """Заморозка расчёта"""

    reason: str = Field(..., min_length=2, max_length=MAX_REASON_LENGTH)


class RejectSettlementCommand(SettlementCommand):
    """Отклонение расчёта"""

    reason: str = Field(..., min_length=2, max_length=MAX_REASON_LENGTH)


class PaySettlementCommand(SettlementCommand):
    """Выплата исполнителю"""

    reference: str | None = Field(None, max_length=100, description="Номер банковской операции")


class AddDeductionCommand(OrderCommand):
    """Удержание из выплаты"""

    deduction_type: str = Field(..., description="damage, loss, claim, etc")
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=2, max_length=MAX_REASON_LENGTH)
    evidence_keys: list[str] = Field(default_factory=list, max_length=MAX_EVIDENCE_KEYS)

    @field_validator("deduction_type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if v not in DeductionType.all_types():
            raise ValueError(
                f"Недопустимый тип удержания. Допустимые: {', '.join(DeductionType.all_types())}"
            )
        return v


class ReportIncidentCommand(OrderCommand):
    """Регистрация инцидента с грузом"""

    incident_type: str = Field(..., description="damage, loss, claim, etc")
    description: str = Field(..., min_length=4, max_length=MAX_MEMO_LENGTH)
    evidence_keys: list[str] = Field(..., max_length=MAX_EVIDENCE_KEYS)
    requested_amount: int = Field(0, ge=0)

    @field_validator("incident_type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.lower()
        if v not in DeductionType.all_types():
            raise ValueError(
                f"Недопустимый тип инцидента. Допустимые: {', '.join(DeductionType.all_types())}"
            )
        return v

    @field_validator("evidence_keys")
    @classmethod
    def validate_evidence_keys(cls, v: list[str]) -> list[str]:
        return normalize_evidence_keys(v)


class ResolveIncidentCommand(BaseModel):
    """Решение по инциденту"""

    model_config = ConfigDict(str_strip_whitespace=True)

    incident_id: int = Field(..., gt=0)
    confirmed: bool = Field(..., description="Подтвердить (удержание) или отклонить")
    deduction_amount: int = Field(0, ge=0)
    note: str | None = Field(None, max_length=MAX_REASON_LENGTH)

    @model_validator(mode="after")
    def validate_amount(self):
        if self.confirmed and self.deduction_amount <= 0:
            raise ValueError("Для подтверждённого инцидента укажите сумму удержания")
        if not self.confirmed and self.deduction_amount:
            raise ValueError("Отклонённый инцидент не может иметь сумму удержания")
        return self

"""Pydantic схемы отчёта о закрытии"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpme.core.config import (
    MAX_EVIDENCE_KEYS,
    MAX_EXTRA_COST_ITEMS,
    MAX_MEMO_LENGTH,
    MAX_REASON_LENGTH,
)
from helpme.schemas.order import OrderCommand


def normalize_evidence_keys(keys: list[str]) -> list[str]:
    """Ключи файлов-доказательств: непустые, без дублей, минимум один"""
    cleaned: list[str] = []
    for key in keys:
        key = key.strip()
        if key and key not in cleaned:
            cleaned.append(key)
    if not cleaned:
        raise ValueError("Нужен хотя бы один файл-доказательство")
    return cleaned


class ExtraCostItemSchema(BaseModel):
    """Дополнительный расход"""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(..., min_length=1, max_length=50, description="Код расхода")
    amount: int = Field(..., ge=0, description="Сумма без НДС")
    memo: str | None = Field(None, max_length=MAX_REASON_LENGTH)


class SubmitClosingCommand(OrderCommand):
    """Отправка отчёта о закрытии исполнителем"""

    delivered_count: int = Field(..., ge=0, description="Доставлено")
    returned_count: int = Field(0, ge=0, description="Возвращено")
    other_count: int = Field(0, ge=0, description="Прочие единицы")
    extra_costs: list[ExtraCostItemSchema] = Field(
        default_factory=list, max_length=MAX_EXTRA_COST_ITEMS
    )
    evidence_keys: list[str] = Field(..., max_length=MAX_EVIDENCE_KEYS)
    memo: str | None = Field(None, max_length=MAX_MEMO_LENGTH)
    revision_note: str | None = Field(None, max_length=MAX_REASON_LENGTH)

    @field_validator("evidence_keys")
    @classmethod
    def validate_evidence_keys(cls, v: list[str]) -> list[str]:
        return normalize_evidence_keys(v)


class ApproveClosingCommand(OrderCommand):
    """Подтверждение отчёта заказчиком"""


class RejectClosingCommand(OrderCommand):
    """Отклонение отчёта заказчиком"""

    reason: str = Field(..., min_length=2, max_length=MAX_REASON_LENGTH)
    category: str | None = Field(None, max_length=50, description="Категория причины")

"""Pydantic схемы команд по заявкам"""

import re
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpme.core.config import MAX_MEMO_LENGTH, MAX_REASON_LENGTH
from helpme.core.constants import OrderCategory, PaymentKind, PricingMode, UserRole


class Actor(BaseModel):
    """Участник, выполняющий действие"""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, description="ID участника (0 для системы)")
    role: str = Field(..., description="Роль участника")

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in UserRole.all_roles():
            raise ValueError(f"Недопустимая роль. Допустимые: {', '.join(UserRole.all_roles())}")
        return v


class OrderCommand(BaseModel):
    """Базовая команда над заявкой"""

    model_config = ConfigDict(str_strip_whitespace=True)

    order_id: int = Field(..., gt=0, description="ID заявки")
    expected_version: int | None = Field(
        None, ge=1, description="Версия заявки, которую видел клиент"
    )


class OrderCreateSchema(BaseModel):
    """Схема для создания заявки"""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=2, max_length=200, description="Название заявки")
    category: str = Field(..., description="Категория: parcel, other, cold_chain")
    pricing_mode: str | None = Field(None, description="Режим тарификации (по категории)")
    pickup_address: str = Field(..., min_length=4, max_length=500, description="Адрес забора")
    scheduled_start: date = Field(..., description="Дата начала работ")
    scheduled_end: date = Field(..., description="Дата окончания работ")
    unit_price: int = Field(..., ge=0, description="Цена за коробку / точку / рейс (без НДС)")
    expected_box_count: int = Field(0, ge=0, description="Ожидаемое количество")
    is_urgent: bool = Field(False, description="Срочная заявка")

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        v = v.lower()
        if v not in OrderCategory.all_categories():
            raise ValueError(
                f"Недопустимая категория. Допустимые: {', '.join(OrderCategory.all_categories())}"
            )
        return v

    @field_validator("pricing_mode")
    @classmethod
    def validate_pricing_mode(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.lower()
        if v not in PricingMode.all_modes():
            raise ValueError(
                f"Недопустимый режим тарификации. Допустимые: {', '.join(PricingMode.all_modes())}"
            )
        return v

    @field_validator("pickup_address")
    @classmethod
    def validate_pickup_address(cls, v: str) -> str:
        """Адрес должен содержать номер дома"""
        if not re.search(r"\d", v):
            raise ValueError("Адрес должен содержать номер дома")
        return v

    @model_validator(mode="after")
    def validate_schedule(self):
        """Окончание не раньше начала, режим тарификации по категории"""
        if self.scheduled_end < self.scheduled_start:
            raise ValueError("Дата окончания раньше даты начала")
        if self.pricing_mode is None:
            self.pricing_mode = PricingMode.for_category(self.category)
        if self.pricing_mode != PricingMode.FLAT_FREIGHT and self.expected_box_count == 0:
            raise ValueError("Для тарификации за коробку/точку укажите ожидаемое количество")
        return self


class ApplyCommand(OrderCommand):
    """Отклик исполнителя на заявку"""

    message: str | None = Field(None, max_length=MAX_MEMO_LENGTH)


class SelectHelperCommand(OrderCommand):
    """Выбор исполнителя заказчиком"""

    application_id: int = Field(..., gt=0, description="ID отклика")


class CheckInCommand(OrderCommand):
    """Check-in исполнителя на месте"""


class CancelOrderCommand(OrderCommand):
    """Отмена заявки"""

    reason: str = Field(..., min_length=2, max_length=MAX_REASON_LENGTH)


class CloseOrderCommand(OrderCommand):
    """Закрытие заявки после выплаты"""


class PaymentRequestCommand(OrderCommand):
    """Запрос оплаты депозита или остатка"""

    kind: str = Field(..., description="deposit или balance")

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v not in (PaymentKind.DEPOSIT, PaymentKind.BALANCE):
            raise ValueError("Вид платежа должен быть deposit или balance")
        return v


class PaymentResultCommand(BaseModel):
    """Результат платежа от шлюза"""

    model_config = ConfigDict(str_strip_whitespace=True)

    payment_id: int = Field(..., gt=0)
    reference: str | None = Field(None, max_length=100)
    failure_reason: str | None = Field(None, max_length=MAX_REASON_LENGTH)

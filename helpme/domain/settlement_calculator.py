"""
Калькулятор расчётов по заявке

Чистые функции без доступа к БД. Все суммы - целые числа в вонах,
ставки - Decimal в процентах. Округление half-up на точном Decimal-произведении.
"""

from dataclasses import asdict, dataclass, field
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any

from helpme.core.config import Config
from helpme.core.constants import OrderCategory, PricingMode
from helpme.domain.exceptions import CalculationAnomalyError


HUNDRED = Decimal(100)


class UrgentApplyType:
    """Способ начисления надбавки за срочность"""

    PERCENT = "percent"
    FIXED = "fixed"


class PlatformFeeBase:
    """База начисления комиссии платформы"""

    TOTAL = "total"  # От суммы с НДС
    SUPPLY = "supply"  # От суммы без НДС


def round_half_up(value: Decimal) -> int:
    """Округление до целого по правилу half-up"""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: Decimal) -> int:
    """Процент от суммы с округлением half-up"""
    return round_half_up(Decimal(amount) * Decimal(percent) / HUNDRED)


def percent_of_floor(amount: int, percent: Decimal) -> int:
    """Процент от суммы с округлением вниз (в пользу заказчика)"""
    return int((Decimal(amount) * Decimal(percent) / HUNDRED).quantize(Decimal(1), rounding=ROUND_DOWN))


@dataclass(frozen=True)
class SettlementPolicy:
    """Политика расчёта, фиксируемая в заявке при создании"""

    vat_rate_percent: Decimal = Decimal("10")
    platform_fee_rate_percent: Decimal = Decimal("10")
    platform_fee_base: str = PlatformFeeBase.TOTAL
    platform_fee_min: int | None = None
    platform_fee_max: int | None = None
    deposit_rate_percent: Decimal = Decimal("20")
    urgent_apply_type: str = UrgentApplyType.PERCENT
    urgent_value: Decimal = Decimal("20")
    urgent_fee_max: int | None = None
    other_unit_price: int = 1800
    min_charge_supply: int = 0

    @classmethod
    def from_config(cls, category: str | None = None) -> "SettlementPolicy":
        """
        Политика по текущей конфигурации

        Args:
            category: Категория заявки (для минимальной стоимости рефрижератора)
        """
        min_charge = Config.MIN_CHARGE_SUPPLY
        if category == OrderCategory.COLD_CHAIN:
            min_charge = max(min_charge, Config.COLD_CHAIN_MIN_CHARGE_SUPPLY)

        return cls(
            vat_rate_percent=Config.VAT_RATE_PERCENT,
            platform_fee_rate_percent=Config.PLATFORM_FEE_RATE_PERCENT,
            platform_fee_min=Config.PLATFORM_FEE_MIN,
            platform_fee_max=Config.PLATFORM_FEE_MAX,
            deposit_rate_percent=Config.DEPOSIT_RATE_PERCENT,
            urgent_value=Config.URGENT_FEE_PERCENT,
            urgent_fee_max=Config.URGENT_FEE_MAX,
            other_unit_price=Config.OTHER_UNIT_PRICE,
            min_charge_supply=min_charge,
        )

    def to_snapshot(self) -> dict[str, Any]:
        """Сериализация в JSON-совместимый словарь"""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Decimal):
                data[key] = str(value)
        return data

    @classmethod
    def from_snapshot(cls, snapshot: dict[str, Any] | None) -> "SettlementPolicy":
        """Восстановление политики из снимка заявки"""
        if not snapshot:
            return cls.from_config()

        decimal_fields = {
            "vat_rate_percent",
            "platform_fee_rate_percent",
            "deposit_rate_percent",
            "urgent_value",
        }
        values = {}
        for key, value in snapshot.items():
            if key not in cls.__dataclass_fields__:
                continue
            values[key] = Decimal(value) if key in decimal_fields else value
        return cls(**values)


@dataclass(frozen=True)
class ExtraCost:
    """Дополнительный расход из отчёта о закрытии"""

    code: str
    amount: int
    memo: str | None = None


@dataclass(frozen=True)
class SettlementInput:
    """Входные данные расчёта"""

    pricing_mode: str
    unit_price: int
    delivered_count: int = 0
    returned_count: int = 0
    other_count: int = 0
    extra_costs: tuple[ExtraCost, ...] = ()
    is_urgent: bool = False
    deductions: int = 0
    cargo_incident_deduction: int = 0


@dataclass(frozen=True)
class SettlementBreakdown:
    """Результат расчёта"""

    base_supply: int
    other_supply: int
    urgent_fee_supply: int
    extra_supply: int
    final_supply: int
    vat: int
    final_total: int
    platform_fee_rate_percent: Decimal
    platform_fee: int
    deductions: int
    cargo_incident_deduction: int
    raw_payout: int
    driver_payout: int
    has_anomaly: bool = False
    anomaly_reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def raise_for_anomaly(self) -> None:
        """
        Raises:
            CalculationAnomalyError: Если расчёт помечен как аномальный
        """
        if self.has_anomaly:
            raise CalculationAnomalyError(
                self.anomaly_reason or "Аномальный результат расчёта",
                raw_payout=self.raw_payout,
                final_total=self.final_total,
            )

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["platform_fee_rate_percent"] = str(self.platform_fee_rate_percent)
        return data


def _check_non_negative(**values: int) -> None:
    for name, value in values.items():
        if value < 0:
            raise CalculationAnomalyError(
                f"Отрицательное значение во входных данных расчёта: {name}={value}",
                field=name,
                value=value,
            )


def calculate_base_supply(
    pricing_mode: str,
    unit_price: int,
    delivered_count: int,
    returned_count: int,
    policy: SettlementPolicy,
) -> int:
    """
    Базовая стоимость без НДС по режиму тарификации

    Args:
        pricing_mode: Режим тарификации
        unit_price: Цена за коробку / точку / рейс
        delivered_count: Доставлено
        returned_count: Возвращено
        policy: Политика расчёта

    Returns:
        Базовая стоимость с учётом минимальной
    """
    if pricing_mode == PricingMode.PER_BOX:
        base = unit_price * (delivered_count + returned_count)
    elif pricing_mode == PricingMode.PER_DROP:
        base = unit_price * delivered_count
    elif pricing_mode == PricingMode.FLAT_FREIGHT:
        base = unit_price
    else:
        raise CalculationAnomalyError(
            f"Неизвестный режим тарификации: {pricing_mode}", pricing_mode=pricing_mode
        )

    if policy.min_charge_supply and base < policy.min_charge_supply:
        base = policy.min_charge_supply
    return base


def calculate_urgent_fee(base_supply: int, is_urgent: bool, policy: SettlementPolicy) -> int:
    """Надбавка за срочность (без НДС)"""
    if not is_urgent or not policy.urgent_value:
        return 0

    if policy.urgent_apply_type == UrgentApplyType.FIXED:
        fee = int(policy.urgent_value)
    else:
        fee = percent_of(base_supply, policy.urgent_value)

    if policy.urgent_fee_max is not None and fee > policy.urgent_fee_max:
        fee = policy.urgent_fee_max
    return fee


def calculate_platform_fee(final_supply: int, final_total: int, policy: SettlementPolicy) -> int:
    """Комиссия платформы с учётом минимума и максимума"""
    fee_base = final_supply if policy.platform_fee_base == PlatformFeeBase.SUPPLY else final_total
    fee = percent_of(fee_base, policy.platform_fee_rate_percent)

    if policy.platform_fee_min is not None and fee < policy.platform_fee_min:
        fee = policy.platform_fee_min
    if policy.platform_fee_max is not None and fee > policy.platform_fee_max:
        fee = policy.platform_fee_max
    return fee


def calculate_settlement(
    inputs: SettlementInput,
    policy: SettlementPolicy,
    strict: bool = False,
) -> SettlementBreakdown:
    """
    Расчёт итоговой суммы и выплаты исполнителю

    Args:
        inputs: Данные из отчёта о закрытии и удержания
        policy: Политика расчёта заявки
        strict: Выбрасывать исключение при отрицательной выплате

    Returns:
        SettlementBreakdown; отрицательная выплата обнуляется и помечается как аномалия

    Raises:
        CalculationAnomalyError: Противоречивые входные данные или (strict) отрицательная выплата
    """
    _check_non_negative(
        unit_price=inputs.unit_price,
        delivered_count=inputs.delivered_count,
        returned_count=inputs.returned_count,
        other_count=inputs.other_count,
        deductions=inputs.deductions,
        cargo_incident_deduction=inputs.cargo_incident_deduction,
    )
    for item in inputs.extra_costs:
        _check_non_negative(**{f"extra_costs.{item.code}": item.amount})

    base_supply = calculate_base_supply(
        inputs.pricing_mode,
        inputs.unit_price,
        inputs.delivered_count,
        inputs.returned_count,
        policy,
    )
    other_supply = 0
    if inputs.pricing_mode != PricingMode.FLAT_FREIGHT:
        other_supply = inputs.other_count * policy.other_unit_price

    urgent_fee_supply = calculate_urgent_fee(base_supply, inputs.is_urgent, policy)
    extra_supply = sum(item.amount for item in inputs.extra_costs)

    final_supply = base_supply + other_supply + urgent_fee_supply + extra_supply
    vat = percent_of(final_supply, policy.vat_rate_percent)
    final_total = final_supply + vat

    platform_fee = calculate_platform_fee(final_supply, final_total, policy)
    raw_payout = final_total - platform_fee - inputs.deductions - inputs.cargo_incident_deduction

    has_anomaly = raw_payout < 0
    anomaly_reason = None
    if has_anomaly:
        anomaly_reason = (
            f"Удержания превышают сумму к выплате: {final_total} - {platform_fee} - "
            f"{inputs.deductions} - {inputs.cargo_incident_deduction} = {raw_payout}"
        )

    breakdown = SettlementBreakdown(
        base_supply=base_supply,
        other_supply=other_supply,
        urgent_fee_supply=urgent_fee_supply,
        extra_supply=extra_supply,
        final_supply=final_supply,
        vat=vat,
        final_total=final_total,
        platform_fee_rate_percent=policy.platform_fee_rate_percent,
        platform_fee=platform_fee,
        deductions=inputs.deductions,
        cargo_incident_deduction=inputs.cargo_incident_deduction,
        raw_payout=raw_payout,
        driver_payout=max(0, raw_payout),
        has_anomaly=has_anomaly,
        anomaly_reason=anomaly_reason,
        details={
            "pricing_mode": inputs.pricing_mode,
            "unit_price": inputs.unit_price,
            "delivered_count": inputs.delivered_count,
            "returned_count": inputs.returned_count,
            "other_count": inputs.other_count,
            "is_urgent": inputs.is_urgent,
            "platform_fee_base": policy.platform_fee_base,
            "extra_costs": [asdict(item) for item in inputs.extra_costs],
        },
    )

    if strict:
        breakdown.raise_for_anomaly()
    return breakdown


@dataclass(frozen=True)
class OrderEstimate:
    """Предварительная стоимость заявки при создании"""

    estimated_supply: int
    estimated_vat: int
    estimated_total: int
    deposit_amount: int
    balance_amount: int


def estimate_order_amounts(
    pricing_mode: str,
    unit_price: int,
    expected_box_count: int,
    is_urgent: bool,
    policy: SettlementPolicy,
) -> OrderEstimate:
    """
    Оценка стоимости заявки и размер депозита

    Депозит округляется вниз, остаток = итог - депозит.
    """
    _check_non_negative(unit_price=unit_price, expected_box_count=expected_box_count)

    base_supply = calculate_base_supply(pricing_mode, unit_price, expected_box_count, 0, policy)
    supply = base_supply + calculate_urgent_fee(base_supply, is_urgent, policy)
    vat = percent_of(supply, policy.vat_rate_percent)
    total = supply + vat
    deposit = percent_of_floor(total, policy.deposit_rate_percent)

    return OrderEstimate(
        estimated_supply=supply,
        estimated_vat=vat,
        estimated_total=total,
        deposit_amount=deposit,
        balance_amount=total - deposit,
    )

"""
Политика отмены заявок
"""

from dataclasses import dataclass
from decimal import Decimal

from helpme.core.config import Config
from helpme.core.constants import OrderStatus
from helpme.domain.exceptions import CancellationPolicyError
from helpme.domain.settlement_calculator import percent_of_floor


@dataclass(frozen=True)
class CancellationDecision:
    """Решение по отмене заявки"""

    refund_amount: int
    post_selection: bool


@dataclass(frozen=True)
class CancellationPolicy:
    """
    Политика отмены

    До выбора исполнителя отмена свободная, депозит возвращается полностью
    (если был оплачен). После выбора исполнителя отмена запрещена; при
    включённом флаге допускается отмена до check-in с частичным возвратом.
    """

    allow_post_selection_cancel: bool = False
    post_selection_refund_percent: Decimal = Decimal("50")

    @classmethod
    def from_config(cls) -> "CancellationPolicy":
        return cls(
            allow_post_selection_cancel=Config.ALLOW_POST_SELECTION_CANCEL,
            post_selection_refund_percent=Config.POST_SELECTION_REFUND_PERCENT,
        )

    def evaluate(self, order_id: int, status: str, deposit_paid: int) -> CancellationDecision:
        """
        Проверка допустимости отмены и расчёт возврата

        Args:
            order_id: ID заявки
            status: Текущий статус заявки
            deposit_paid: Оплаченная сумма депозита

        Returns:
            CancellationDecision

        Raises:
            CancellationPolicyError: Если отмена запрещена политикой
        """
        if status in OrderStatus.PRE_MATCHING:
            return CancellationDecision(refund_amount=deposit_paid, post_selection=False)

        if status == OrderStatus.SCHEDULED and self.allow_post_selection_cancel:
            refund = percent_of_floor(deposit_paid, self.post_selection_refund_percent)
            return CancellationDecision(refund_amount=refund, post_selection=True)

        if status in (OrderStatus.CANCELLED, OrderStatus.CLOSED):
            # Терминальные статусы обрабатывает граф переходов
            return CancellationDecision(refund_amount=0, post_selection=False)

        raise CancellationPolicyError(
            order_id,
            status,
            "Отмена после выбора исполнителя запрещена, депозит не возвращается",
        )

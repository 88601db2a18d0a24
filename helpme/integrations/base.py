"""
Интерфейсы внешних сервисов: уведомления и платёжный шлюз
"""

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class PaymentResult:
    """Ответ платёжного шлюза"""

    success: bool
    reference: str | None = None
    message: str | None = None


class Notifier(Protocol):
    """Отправка уведомлений участникам"""

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        """
        Raises:
            ExternalCollaboratorError: Уведомление не доставлено
        """
        ...


class PaymentGateway(Protocol):
    """
    Платёжный шлюз

    idempotency_key одинаков для всех повторов одной outbox-задачи:
    шлюз не списывает и не выплачивает повторно по известному ключу.
    """

    async def capture(
        self, order_id: int, amount: int, kind: str, idempotency_key: str | None = None
    ) -> PaymentResult: ...

    async def refund(
        self, order_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult: ...

    async def payout(
        self, order_id: int, helper_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult: ...

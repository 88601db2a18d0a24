"""
State Machine для валидации переходов статусов заявок
"""

from helpme.core.constants import OrderStatus, UserRole
from helpme.domain.state_machine import StateMachine


class OrderStateMachine(StateMachine):
    """
    State Machine для управления жизненным циклом заявки

    Граф переходов:

    PENDING_DEPOSIT → OPEN → SCHEDULED → IN_PROGRESS → CLOSING_SUBMITTED
          ↓            ↓                      ↑                ↓
      CANCELLED    CANCELLED                  └── (отклонён) ──┘
                                                               ↓
                      FINAL_AMOUNT_CONFIRMED → BALANCE_PAID → SETTLEMENT_PAID → CLOSED

    SCHEDULED → CANCELLED открывается только политикой отмены.
    """

    ENTITY_TYPE = "order"

    TRANSITIONS: dict[str, set[str]] = {
        OrderStatus.PENDING_DEPOSIT: {
            OrderStatus.OPEN,  # Депозит оплачен
            OrderStatus.CANCELLED,
        },
        OrderStatus.OPEN: {
            OrderStatus.SCHEDULED,  # Выбор исполнителя
            OrderStatus.CANCELLED,
        },
        OrderStatus.SCHEDULED: {
            OrderStatus.IN_PROGRESS,  # Check-in исполнителя
        },
        OrderStatus.IN_PROGRESS: {
            OrderStatus.CLOSING_SUBMITTED,
        },
        OrderStatus.CLOSING_SUBMITTED: {
            OrderStatus.FINAL_AMOUNT_CONFIRMED,  # Отчёт подтверждён
            OrderStatus.IN_PROGRESS,  # Отчёт отклонён, повторная отправка
        },
        OrderStatus.FINAL_AMOUNT_CONFIRMED: {
            OrderStatus.BALANCE_PAID,
        },
        OrderStatus.BALANCE_PAID: {
            OrderStatus.SETTLEMENT_PAID,
        },
        OrderStatus.SETTLEMENT_PAID: {
            OrderStatus.CLOSED,
        },
        OrderStatus.CLOSED: set(),  # Терминальное состояние
        OrderStatus.CANCELLED: set(),  # Терминальное состояние
    }

    ROLE_PERMISSIONS: dict[tuple[str, str], set[str]] = {
        (OrderStatus.PENDING_DEPOSIT, OrderStatus.OPEN): {
            UserRole.SYSTEM,  # Подтверждение от платёжного шлюза
            UserRole.ADMIN,
        },
        (OrderStatus.PENDING_DEPOSIT, OrderStatus.CANCELLED): {
            UserRole.REQUESTER,
            UserRole.ADMIN,
        },
        (OrderStatus.OPEN, OrderStatus.SCHEDULED): {
            UserRole.REQUESTER,  # Заказчик выбирает исполнителя
            UserRole.ADMIN,
        },
        (OrderStatus.OPEN, OrderStatus.CANCELLED): {
            UserRole.REQUESTER,
            UserRole.ADMIN,
        },
        (OrderStatus.SCHEDULED, OrderStatus.IN_PROGRESS): {
            UserRole.HELPER,
            UserRole.ADMIN,
        },
        (OrderStatus.SCHEDULED, OrderStatus.CANCELLED): {
            UserRole.REQUESTER,
            UserRole.ADMIN,
        },
        (OrderStatus.IN_PROGRESS, OrderStatus.CLOSING_SUBMITTED): {
            UserRole.HELPER,
        },
        (OrderStatus.CLOSING_SUBMITTED, OrderStatus.FINAL_AMOUNT_CONFIRMED): {
            UserRole.REQUESTER,  # Только заказчик подтверждает итоговую сумму
        },
        (OrderStatus.CLOSING_SUBMITTED, OrderStatus.IN_PROGRESS): {
            UserRole.REQUESTER,
        },
        (OrderStatus.FINAL_AMOUNT_CONFIRMED, OrderStatus.BALANCE_PAID): {
            UserRole.SYSTEM,
            UserRole.ADMIN,
        },
        (OrderStatus.BALANCE_PAID, OrderStatus.SETTLEMENT_PAID): {
            UserRole.ADMIN,
            UserRole.SYSTEM,
        },
        (OrderStatus.SETTLEMENT_PAID, OrderStatus.CLOSED): {
            UserRole.ADMIN,
            UserRole.SYSTEM,
        },
    }

    POLICY_GATED: set[tuple[str, str]] = {
        (OrderStatus.SCHEDULED, OrderStatus.CANCELLED),
    }

    status_name = staticmethod(OrderStatus.get_status_name)

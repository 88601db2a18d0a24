"""
State Machine для статусов расчёта с исполнителем
"""

from helpme.core.constants import SettlementStatus, UserRole
from helpme.domain.state_machine import StateMachine


_ADMIN = {UserRole.ADMIN}
_ADMIN_OR_SYSTEM = {UserRole.ADMIN, UserRole.SYSTEM}


class SettlementStateMachine(StateMachine):
    """
    State Machine расчёта

    PENDING → CONFIRMED → PAYABLE → PAID
       ↓          ↓          ↓
       └──────── HOLD ───────┘   (release возвращает в статус до заморозки)

    Выплата из HOLD невозможна, сначала release.
    """

    ENTITY_TYPE = "settlement"

    # Статусы, из которых расчёт можно заморозить
    HOLDABLE = (SettlementStatus.PENDING, SettlementStatus.CONFIRMED, SettlementStatus.PAYABLE)

    TRANSITIONS: dict[str, set[str]] = {
        SettlementStatus.PENDING: {
            SettlementStatus.CONFIRMED,
            SettlementStatus.HOLD,
            SettlementStatus.REJECTED,
        },
        SettlementStatus.CONFIRMED: {
            SettlementStatus.PAYABLE,
            SettlementStatus.HOLD,
            SettlementStatus.PAID,
        },
        SettlementStatus.PAYABLE: {
            SettlementStatus.HOLD,
            SettlementStatus.PAID,
        },
        SettlementStatus.HOLD: set(HOLDABLE),
        SettlementStatus.PAID: set(),  # Терминальное состояние
        SettlementStatus.REJECTED: set(),  # Терминальное состояние
    }

    ROLE_PERMISSIONS: dict[tuple[str, str], set[str]] = {
        (SettlementStatus.PENDING, SettlementStatus.CONFIRMED): _ADMIN,
        (SettlementStatus.PENDING, SettlementStatus.REJECTED): _ADMIN,
        (SettlementStatus.CONFIRMED, SettlementStatus.PAYABLE): _ADMIN,
        (SettlementStatus.CONFIRMED, SettlementStatus.PAID): _ADMIN,
        (SettlementStatus.PAYABLE, SettlementStatus.PAID): _ADMIN,
        # Заморозка выполняется и автоматически при инциденте
        (SettlementStatus.PENDING, SettlementStatus.HOLD): _ADMIN_OR_SYSTEM,
        (SettlementStatus.CONFIRMED, SettlementStatus.HOLD): _ADMIN_OR_SYSTEM,
        (SettlementStatus.PAYABLE, SettlementStatus.HOLD): _ADMIN_OR_SYSTEM,
        (SettlementStatus.HOLD, SettlementStatus.PENDING): _ADMIN_OR_SYSTEM,
        (SettlementStatus.HOLD, SettlementStatus.CONFIRMED): _ADMIN_OR_SYSTEM,
        (SettlementStatus.HOLD, SettlementStatus.PAYABLE): _ADMIN_OR_SYSTEM,
    }

    status_name = staticmethod(SettlementStatus.get_status_name)

    @classmethod
    def release_target(cls, held_from_status: str | None) -> str:
        """
        Статус, в который возвращается расчёт после снятия заморозки

        Args:
            held_from_status: Статус на момент заморозки

        Returns:
            Статус для release (PENDING если исходный неизвестен)
        """
        if held_from_status in cls.HOLDABLE:
            return held_from_status
        return SettlementStatus.PENDING

    @classmethod
    def is_mutable(cls, status: str) -> bool:
        """Можно ли пересчитывать расчёт в этом статусе"""
        return status in cls.HOLDABLE or status == SettlementStatus.HOLD

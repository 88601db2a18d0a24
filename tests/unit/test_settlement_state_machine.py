"""
Тесты графа переходов расчёта
"""
import itertools

import pytest

from helpme.core.constants import SettlementStatus, UserRole
from helpme.domain.exceptions import IllegalTransitionError, UnauthorizedError
from helpme.domain.settlement_state_machine import SettlementStateMachine


ADMIN, SYSTEM = UserRole.ADMIN, UserRole.SYSTEM

# Кто может выполнить каждый разрешённый переход
EXPECTED_ROLES = {
    (SettlementStatus.PENDING, SettlementStatus.CONFIRMED): {ADMIN},
    (SettlementStatus.PENDING, SettlementStatus.HOLD): {ADMIN, SYSTEM},
    (SettlementStatus.PENDING, SettlementStatus.REJECTED): {ADMIN},
    (SettlementStatus.CONFIRMED, SettlementStatus.PAYABLE): {ADMIN},
    (SettlementStatus.CONFIRMED, SettlementStatus.HOLD): {ADMIN, SYSTEM},
    (SettlementStatus.CONFIRMED, SettlementStatus.PAID): {ADMIN},
    (SettlementStatus.PAYABLE, SettlementStatus.HOLD): {ADMIN, SYSTEM},
    (SettlementStatus.PAYABLE, SettlementStatus.PAID): {ADMIN},
    (SettlementStatus.HOLD, SettlementStatus.PENDING): {ADMIN, SYSTEM},
    (SettlementStatus.HOLD, SettlementStatus.CONFIRMED): {ADMIN, SYSTEM},
    (SettlementStatus.HOLD, SettlementStatus.PAYABLE): {ADMIN, SYSTEM},
}

LEGAL = set(EXPECTED_ROLES)

ALL_PAIRS_AND_ROLES = list(
    itertools.product(
        SettlementStatus.all_statuses(), SettlementStatus.all_statuses(), UserRole.all_roles()
    )
)


class TestSettlementTransitionTable:
    """Тесты таблицы переходов расчёта"""

    @pytest.mark.parametrize(
        ("current", "target"), list(itertools.product(SettlementStatus.all_statuses(), repeat=2))
    )
    def test_every_pair(self, current, target):
        """Тест: разрешены только перечисленные пары статусов"""
        assert SettlementStateMachine.can_transition(current, target) == (
            (current, target) in LEGAL
        )

    @pytest.mark.parametrize(("current", "target", "role"), ALL_PAIRS_AND_ROLES)
    def test_every_pair_and_role(self, current, target, role):
        """Тест: переход расчёта разрешён только ролям из таблицы"""
        allowed = EXPECTED_ROLES.get((current, target), set())
        assert SettlementStateMachine.is_legal(current, target, role) == (role in allowed)

    @pytest.mark.parametrize(("current", "target", "role"), ALL_PAIRS_AND_ROLES)
    def test_validate_error_kind(self, current, target, role):
        """Тест: недопустимая пара даёт IllegalTransitionError, чужая роль UnauthorizedError"""
        allowed = EXPECTED_ROLES.get((current, target))
        if allowed is None:
            with pytest.raises(IllegalTransitionError):
                SettlementStateMachine.validate_transition(current, target, role)
        elif role not in allowed:
            with pytest.raises(UnauthorizedError):
                SettlementStateMachine.validate_transition(current, target, role)
        else:
            assert SettlementStateMachine.validate_transition(current, target, role).is_valid

    def test_hold_cannot_be_paid(self):
        """Тест: выплата из заморозки невозможна даже администратором"""
        with pytest.raises(IllegalTransitionError):
            SettlementStateMachine.validate_transition(
                SettlementStatus.HOLD, SettlementStatus.PAID, UserRole.ADMIN
            )

    @pytest.mark.parametrize("status", [SettlementStatus.PAID, SettlementStatus.REJECTED])
    def test_terminal_statuses(self, status):
        """Тест: выплаченный и отклонённый расчёт терминальны"""
        assert SettlementStateMachine.is_terminal_state(status)
        assert not SettlementStateMachine.is_mutable(status)

    def test_system_can_hold_but_not_pay(self):
        """Тест: система замораживает расчёт при инциденте, но не выплачивает"""
        assert SettlementStateMachine.is_legal(
            SettlementStatus.PAYABLE, SettlementStatus.HOLD, UserRole.SYSTEM
        )
        with pytest.raises(UnauthorizedError):
            SettlementStateMachine.validate_transition(
                SettlementStatus.PAYABLE, SettlementStatus.PAID, UserRole.SYSTEM
            )

    def test_requester_has_no_settlement_transitions(self):
        """Тест: заказчик не управляет расчётом"""
        for status in SettlementStatus.all_statuses():
            assert SettlementStateMachine.get_available_transitions(
                status, role=UserRole.REQUESTER
            ) == set()


class TestReleaseTarget:
    """Тесты статуса после снятия заморозки"""

    @pytest.mark.parametrize("status", SettlementStateMachine.HOLDABLE)
    def test_returns_to_prior_status(self, status):
        """Тест: release возвращает статус до заморозки"""
        assert SettlementStateMachine.release_target(status) == status

    @pytest.mark.parametrize("status", [None, SettlementStatus.PAID, "unknown"])
    def test_unknown_prior_status_falls_back_to_pending(self, status):
        """Тест: неизвестный исходный статус возвращает в pending"""
        assert SettlementStateMachine.release_target(status) == SettlementStatus.PENDING

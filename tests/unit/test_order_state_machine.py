"""
Тесты графа переходов заявки
"""
import itertools

import pytest

from helpme.core.constants import OrderStatus, UserRole
from helpme.domain.exceptions import IllegalTransitionError, UnauthorizedError
from helpme.domain.order_state_machine import OrderStateMachine


REQUESTER, HELPER, ADMIN, SYSTEM = UserRole.REQUESTER, UserRole.HELPER, UserRole.ADMIN, UserRole.SYSTEM

# Кто может выполнить каждый разрешённый переход
EXPECTED_ROLES = {
    (OrderStatus.PENDING_DEPOSIT, OrderStatus.OPEN): {SYSTEM, ADMIN},
    (OrderStatus.PENDING_DEPOSIT, OrderStatus.CANCELLED): {REQUESTER, ADMIN},
    (OrderStatus.OPEN, OrderStatus.SCHEDULED): {REQUESTER, ADMIN},
    (OrderStatus.OPEN, OrderStatus.CANCELLED): {REQUESTER, ADMIN},
    (OrderStatus.SCHEDULED, OrderStatus.IN_PROGRESS): {HELPER, ADMIN},
    (OrderStatus.IN_PROGRESS, OrderStatus.CLOSING_SUBMITTED): {HELPER},
    (OrderStatus.CLOSING_SUBMITTED, OrderStatus.FINAL_AMOUNT_CONFIRMED): {REQUESTER},
    (OrderStatus.CLOSING_SUBMITTED, OrderStatus.IN_PROGRESS): {REQUESTER},
    (OrderStatus.FINAL_AMOUNT_CONFIRMED, OrderStatus.BALANCE_PAID): {SYSTEM, ADMIN},
    (OrderStatus.BALANCE_PAID, OrderStatus.SETTLEMENT_PAID): {SYSTEM, ADMIN},
    (OrderStatus.SETTLEMENT_PAID, OrderStatus.CLOSED): {SYSTEM, ADMIN},
}

# Переходы, которые открывает только политика отмены
POLICY_GATED_ROLES = {
    (OrderStatus.SCHEDULED, OrderStatus.CANCELLED): {REQUESTER, ADMIN},
}

LEGAL = set(EXPECTED_ROLES)

ALL_PAIRS = list(itertools.product(OrderStatus.all_statuses(), repeat=2))
ALL_PAIRS_AND_ROLES = list(
    itertools.product(OrderStatus.all_statuses(), OrderStatus.all_statuses(), UserRole.all_roles())
)


class TestOrderTransitionTable:
    """Тесты таблицы переходов без учёта ролей"""

    @pytest.mark.parametrize(("current", "target"), ALL_PAIRS)
    def test_every_pair(self, current, target):
        """Тест: разрешены только перечисленные пары статусов"""
        assert OrderStateMachine.can_transition(current, target) == ((current, target) in LEGAL)

    def test_post_selection_cancel_is_policy_gated(self):
        """Тест: scheduled → cancelled открывается только политикой"""
        assert not OrderStateMachine.can_transition(OrderStatus.SCHEDULED, OrderStatus.CANCELLED)
        assert OrderStateMachine.can_transition(
            OrderStatus.SCHEDULED, OrderStatus.CANCELLED, allow_policy_gated=True
        )

    @pytest.mark.parametrize("status", [OrderStatus.CLOSED, OrderStatus.CANCELLED])
    def test_terminal_statuses(self, status):
        """Тест: из закрытой и отменённой заявки переходов нет"""
        assert OrderStateMachine.is_terminal_state(status)
        assert OrderStateMachine.get_available_transitions(status) == set()

    def test_scheduled_is_not_terminal(self):
        """Тест: scheduled не терминальный, хотя отмена из него закрыта политикой"""
        assert not OrderStateMachine.is_terminal_state(OrderStatus.SCHEDULED)


class TestOrderRolePermissions:
    """Тесты проверки ролей"""

    @pytest.mark.parametrize(("current", "target", "role"), ALL_PAIRS_AND_ROLES)
    def test_every_pair_and_role(self, current, target, role):
        """Тест: переход разрешён только ролям из таблицы"""
        allowed = EXPECTED_ROLES.get((current, target), set())
        assert OrderStateMachine.is_legal(current, target, role) == (role in allowed)

    @pytest.mark.parametrize(("current", "target", "role"), ALL_PAIRS_AND_ROLES)
    def test_every_pair_and_role_with_policy(self, current, target, role):
        """Тест: политика открывает только scheduled → cancelled и только для заказчика и администратора"""
        allowed = {**EXPECTED_ROLES, **POLICY_GATED_ROLES}.get((current, target), set())
        assert OrderStateMachine.is_legal(
            current, target, role, allow_policy_gated=True
        ) == (role in allowed)

    @pytest.mark.parametrize(("current", "target", "role"), ALL_PAIRS_AND_ROLES)
    def test_validate_error_kind(self, current, target, role):
        """Тест: недопустимая пара даёт IllegalTransitionError, чужая роль UnauthorizedError"""
        allowed = EXPECTED_ROLES.get((current, target))
        if allowed is None:
            with pytest.raises(IllegalTransitionError):
                OrderStateMachine.validate_transition(current, target, role)
        elif role not in allowed:
            with pytest.raises(UnauthorizedError):
                OrderStateMachine.validate_transition(current, target, role)
        else:
            assert OrderStateMachine.validate_transition(current, target, role).is_valid

    def test_only_requester_confirms_final_amount(self):
        """Тест: итоговую сумму подтверждает только заказчик"""
        pair = (OrderStatus.CLOSING_SUBMITTED, OrderStatus.FINAL_AMOUNT_CONFIRMED)
        assert OrderStateMachine.is_legal(*pair, UserRole.REQUESTER)
        for role in (UserRole.HELPER, UserRole.ADMIN, UserRole.SYSTEM):
            assert not OrderStateMachine.is_legal(*pair, role)

    def test_deposit_confirmed_by_system(self):
        """Тест: депозит подтверждает шлюз (system) или администратор"""
        pair = (OrderStatus.PENDING_DEPOSIT, OrderStatus.OPEN)
        assert OrderStateMachine.is_legal(*pair, UserRole.SYSTEM)
        assert OrderStateMachine.is_legal(*pair, UserRole.ADMIN)
        assert not OrderStateMachine.is_legal(*pair, UserRole.REQUESTER)

    def test_helper_cannot_select_itself(self):
        """Тест: исполнитель не может перевести заявку в scheduled"""
        with pytest.raises(UnauthorizedError) as exc_info:
            OrderStateMachine.validate_transition(
                OrderStatus.OPEN, OrderStatus.SCHEDULED, UserRole.HELPER
            )
        assert exc_info.value.details["role"] == UserRole.HELPER

    def test_illegal_pair_raises_illegal_transition(self):
        """Тест: недопустимая пара даёт IllegalTransitionError даже для администратора"""
        with pytest.raises(IllegalTransitionError) as exc_info:
            OrderStateMachine.validate_transition(
                OrderStatus.OPEN, OrderStatus.CLOSED, UserRole.ADMIN
            )
        error = exc_info.value
        assert error.from_state == OrderStatus.OPEN
        assert error.to_state == OrderStatus.CLOSED
        assert error.code == "ILLEGAL_TRANSITION"

    def test_same_status_is_not_a_transition(self):
        """Тест: повторный выбор исполнителя (scheduled → scheduled) отклоняется"""
        with pytest.raises(IllegalTransitionError, match="статус уже установлен"):
            OrderStateMachine.validate_transition(
                OrderStatus.SCHEDULED, OrderStatus.SCHEDULED, UserRole.REQUESTER
            )

    def test_validate_without_exception(self):
        """Тест: raise_exception=False возвращает результат с причиной"""
        result = OrderStateMachine.validate_transition(
            OrderStatus.CANCELLED, OrderStatus.OPEN, UserRole.ADMIN, raise_exception=False
        )
        assert not result.is_valid
        assert result.error_message == "терминальный статус"

    def test_available_transitions_for_role(self):
        """Тест: доступные переходы фильтруются по роли"""
        assert OrderStateMachine.get_available_transitions(
            OrderStatus.OPEN, role=UserRole.REQUESTER
        ) == {OrderStatus.SCHEDULED, OrderStatus.CANCELLED}
        assert OrderStateMachine.get_available_transitions(
            OrderStatus.OPEN, role=UserRole.HELPER
        ) == set()

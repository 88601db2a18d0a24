"""
Тесты политики отмены заявок
"""
from decimal import Decimal

import pytest

from helpme.core.config import Config
from helpme.core.constants import OrderStatus
from helpme.domain.cancellation_policy import CancellationPolicy
from helpme.domain.exceptions import CancellationPolicyError


class TestCancellationPolicy:
    """Тесты решения об отмене и возврате"""

    @pytest.mark.parametrize("status", OrderStatus.PRE_MATCHING)
    def test_free_cancel_before_matching(self, status):
        """Тест: до выбора исполнителя депозит возвращается полностью"""
        decision = CancellationPolicy().evaluate(1, status, 27720)

        assert decision.refund_amount == 27720
        assert not decision.post_selection

    def test_unpaid_deposit_refunds_nothing(self):
        """Тест: неоплаченный депозит не возвращается"""
        assert CancellationPolicy().evaluate(1, OrderStatus.PENDING_DEPOSIT, 0).refund_amount == 0

    def test_post_selection_cancel_forbidden_by_default(self):
        """Тест: после выбора исполнителя отмена запрещена"""
        with pytest.raises(CancellationPolicyError) as exc_info:
            CancellationPolicy().evaluate(7, OrderStatus.SCHEDULED, 27720)

        assert exc_info.value.order_id == 7
        assert exc_info.value.code == "CANCELLATION_POLICY"

    @pytest.mark.parametrize(
        "status", [OrderStatus.IN_PROGRESS, OrderStatus.CLOSING_SUBMITTED, OrderStatus.BALANCE_PAID]
    )
    def test_cancel_after_check_in_always_forbidden(self, status):
        """Тест: после check-in отмена запрещена даже с флагом"""
        policy = CancellationPolicy(allow_post_selection_cancel=True)
        with pytest.raises(CancellationPolicyError):
            policy.evaluate(1, status, 27720)

    def test_post_selection_cancel_with_partial_refund(self):
        """Тест: при включённом флаге возвращается доля депозита (вниз)"""
        policy = CancellationPolicy(
            allow_post_selection_cancel=True, post_selection_refund_percent=Decimal("50")
        )
        decision = policy.evaluate(1, OrderStatus.SCHEDULED, 27721)

        assert decision.refund_amount == 13860
        assert decision.post_selection

    def test_terminal_statuses_left_to_transition_graph(self):
        """Тест: отменённую заявку отклоняет граф переходов, а не политика"""
        decision = CancellationPolicy().evaluate(1, OrderStatus.CANCELLED, 27720)
        assert decision.refund_amount == 0

    def test_from_config(self, monkeypatch):
        """Тест: политика из конфигурации"""
        monkeypatch.setattr(Config, "ALLOW_POST_SELECTION_CANCEL", True)
        monkeypatch.setattr(Config, "POST_SELECTION_REFUND_PERCENT", Decimal("30"))

        policy = CancellationPolicy.from_config()
        assert policy.allow_post_selection_cancel
        assert policy.evaluate(1, OrderStatus.SCHEDULED, 1000).refund_amount == 300

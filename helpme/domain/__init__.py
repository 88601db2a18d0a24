"""
Доменный слой: state machines, калькулятор расчётов, политики
"""

from helpme.domain.cancellation_policy import CancellationDecision, CancellationPolicy
from helpme.domain.exceptions import (
    CalculationAnomalyError,
    CancellationPolicyError,
    DomainError,
    ExternalCollaboratorError,
    IllegalTransitionError,
    UnauthorizedError,
    ValidationFailedError,
)
from helpme.domain.order_state_machine import OrderStateMachine
from helpme.domain.settlement_calculator import (
    ExtraCost,
    SettlementBreakdown,
    SettlementInput,
    SettlementPolicy,
    calculate_settlement,
    estimate_order_amounts,
)
from helpme.domain.settlement_state_machine import SettlementStateMachine
from helpme.domain.state_machine import StateMachine, StateTransitionResult


__all__ = [
    "CalculationAnomalyError",
    "CancellationDecision",
    "CancellationPolicy",
    "CancellationPolicyError",
    "DomainError",
    "ExternalCollaboratorError",
    "ExtraCost",
    "IllegalTransitionError",
    "OrderStateMachine",
    "SettlementBreakdown",
    "SettlementInput",
    "SettlementPolicy",
    "SettlementStateMachine",
    "StateMachine",
    "StateTransitionResult",
    "UnauthorizedError",
    "ValidationFailedError",
    "calculate_settlement",
    "estimate_order_amounts",
]

"""
Доменные исключения жизненного цикла заявок и расчётов

Каждое исключение несёт код, текст для пользователя и структурированные детали.
"""

from typing import Any


class DomainError(Exception):
    """Базовое доменное исключение"""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class IllegalTransitionError(DomainError):
    """Переход статуса не разрешён из текущего состояния"""

    code = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        from_state: str,
        to_state: str,
        reason: str = "",
    ):
        self.entity_type = entity_type
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        message = f"Недопустимый переход {entity_type} из '{from_state}' в '{to_state}'"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            {"entity_type": entity_type, "from_state": from_state, "to_state": to_state},
        )


class UnauthorizedError(DomainError):
    """У участника нет прав на действие"""

    code = "UNAUTHORIZED"

    def __init__(self, message: str, role: str | None = None, **details: Any):
        self.role = role
        super().__init__(message, {"role": role, **details})


class ValidationFailedError(DomainError):
    """Данные команды не прошли проверку"""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, field: str | None = None, **details: Any):
        self.field = field
        payload = dict(details)
        if field:
            payload["field"] = field
        super().__init__(message, payload)


class CancellationPolicyError(DomainError):
    """Отмена запрещена политикой отмены (а не графом переходов)"""

    code = "CANCELLATION_POLICY"

    def __init__(self, order_id: int, status: str, reason: str):
        self.order_id = order_id
        self.status = status
        super().__init__(reason, {"order_id": order_id, "status": status})


class CalculationAnomalyError(DomainError):
    """Расчёт дал отрицательную выплату или входные данные противоречивы"""

    code = "CALCULATION_ANOMALY"

    def __init__(self, message: str, **details: Any):
        super().__init__(message, details)


class ExternalCollaboratorError(DomainError):
    """Сбой внешнего сервиса (платёжный шлюз, уведомления)"""

    code = "EXTERNAL_COLLABORATOR"

    def __init__(self, collaborator: str, message: str, retryable: bool = True):
        self.collaborator = collaborator
        self.retryable = retryable
        super().__init__(
            f"{collaborator}: {message}",
            {"collaborator": collaborator, "retryable": retryable},
        )

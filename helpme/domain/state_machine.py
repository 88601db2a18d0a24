"""
Базовая табличная State Machine для валидации переходов статусов
"""

from collections.abc import Callable
from dataclasses import dataclass, field

from helpme.domain.exceptions import IllegalTransitionError, UnauthorizedError


@dataclass
class StateTransitionResult:
    """Результат валидации перехода статуса"""

    is_valid: bool
    error_message: str | None = None
    allowed_roles: set[str] = field(default_factory=set)


class StateMachine:
    """
    Табличная State Machine

    Всё, что не перечислено в TRANSITIONS и ROLE_PERMISSIONS, запрещено.
    Переход в тот же статус переходом не считается.
    """

    ENTITY_TYPE: str = "entity"

    # Допустимые переходы: из какого статуса в какие можно перейти
    TRANSITIONS: dict[str, set[str]] = {}

    # Роли, которые могут выполнять переходы: (from_status, to_status) -> {roles}
    ROLE_PERMISSIONS: dict[tuple[str, str], set[str]] = {}

    # Переходы, которые открываются только политикой (по умолчанию закрыты)
    POLICY_GATED: set[tuple[str, str]] = set()

    status_name: Callable[[str], str] = staticmethod(lambda status: status)

    @classmethod
    def can_transition(cls, from_state: str, to_state: str, allow_policy_gated: bool = False) -> bool:
        """
        Проверка возможности перехода между статусами (без учёта ролей)

        Args:
            from_state: Текущий статус
            to_state: Целевой статус
            allow_policy_gated: Разрешены ли переходы, открываемые политикой

        Returns:
            True если переход допустим
        """
        if from_state == to_state:
            return False

        if (from_state, to_state) in cls.POLICY_GATED:
            return allow_policy_gated

        return to_state in cls.TRANSITIONS.get(from_state, set())

    @classmethod
    def is_legal(
        cls,
        current: str,
        target: str,
        role: str,
        allow_policy_gated: bool = False,
    ) -> bool:
        """
        Разрешён ли переход current → target для роли

        Args:
            current: Текущий статус
            target: Целевой статус
            role: Роль участника
            allow_policy_gated: Разрешены ли переходы, открываемые политикой

        Returns:
            True только если пара статусов и роль есть в таблицах
        """
        if not cls.can_transition(current, target, allow_policy_gated):
            return False
        return role in cls.ROLE_PERMISSIONS.get((current, target), set())

    @classmethod
    def validate_transition(
        cls,
        from_state: str,
        to_state: str,
        role: str,
        raise_exception: bool = True,
        allow_policy_gated: bool = False,
    ) -> StateTransitionResult:
        """
        Валидация перехода статуса с проверкой прав

        Args:
            from_state: Текущий статус
            to_state: Целевой статус
            role: Роль участника
            raise_exception: Выбрасывать ли исключение при ошибке
            allow_policy_gated: Разрешены ли переходы, открываемые политикой

        Returns:
            StateTransitionResult с результатом валидации

        Raises:
            IllegalTransitionError: Пара статусов не разрешена
            UnauthorizedError: Пара разрешена, но не для этой роли
        """
        if not cls.can_transition(from_state, to_state, allow_policy_gated):
            if from_state == to_state:
                reason = "статус уже установлен"
            else:
                available = cls.get_available_transitions(from_state)
                if available:
                    names = ", ".join(cls.status_name(s) for s in sorted(available))
                    reason = f"допустимые переходы: {names}"
                else:
                    reason = "терминальный статус"

            if raise_exception:
                raise IllegalTransitionError(cls.ENTITY_TYPE, from_state, to_state, reason)
            return StateTransitionResult(is_valid=False, error_message=reason)

        allowed_roles = cls.ROLE_PERMISSIONS.get((from_state, to_state), set())
        if role not in allowed_roles:
            message = (
                f"Роль '{role}' не может переводить {cls.ENTITY_TYPE} "
                f"из '{cls.status_name(from_state)}' в '{cls.status_name(to_state)}'"
            )
            if raise_exception:
                raise UnauthorizedError(
                    message,
                    role=role,
                    from_state=from_state,
                    to_state=to_state,
                    allowed_roles=sorted(allowed_roles),
                )
            return StateTransitionResult(
                is_valid=False, error_message=message, allowed_roles=set(allowed_roles)
            )

        return StateTransitionResult(is_valid=True, allowed_roles=set(allowed_roles))

    @classmethod
    def get_available_transitions(cls, from_state: str, role: str | None = None) -> set[str]:
        """
        Получение допустимых переходов из текущего статуса

        Args:
            from_state: Текущий статус
            role: Если указана, учитываются только переходы, доступные роли

        Returns:
            Множество статусов
        """
        targets = set(cls.TRANSITIONS.get(from_state, set()))
        if role is None:
            return targets
        return {t for t in targets if role in cls.ROLE_PERMISSIONS.get((from_state, t), set())}

    @classmethod
    def is_terminal_state(cls, state: str) -> bool:
        """Является ли статус терминальным"""
        return not cls.TRANSITIONS.get(state) and not any(
            src == state for src, _ in cls.POLICY_GATED
        )

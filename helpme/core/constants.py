"""
Константы приложения - роли, статусы заявок и расчётов, категории
"""


class UserRole:
    """Роли участников"""

    REQUESTER = "requester"  # Заказчик (бизнес)
    HELPER = "helper"  # Исполнитель (курьер)
    ADMIN = "admin"
    SYSTEM = "system"  # Внутренние события (вебхуки, планировщик)

    @classmethod
    def all_roles(cls) -> list[str]:
        """Список всех ролей"""
        return [cls.REQUESTER, cls.HELPER, cls.ADMIN, cls.SYSTEM]

    @classmethod
    def get_role_name(cls, role: str) -> str:
        """Получение названия роли на русском"""
        names = {
            cls.REQUESTER: "Заказчик",
            cls.HELPER: "Исполнитель",
            cls.ADMIN: "Администратор",
            cls.SYSTEM: "Система",
        }
        return names.get(role, role)


class OrderStatus:
    """Статусы заявок"""

    PENDING_DEPOSIT = "pending_deposit"  # Ожидает оплаты депозита
    OPEN = "open"  # Открыта для откликов
    SCHEDULED = "scheduled"  # Исполнитель выбран
    IN_PROGRESS = "in_progress"  # Исполнитель на месте
    CLOSING_SUBMITTED = "closing_submitted"  # Отчёт о закрытии отправлен
    FINAL_AMOUNT_CONFIRMED = "final_amount_confirmed"  # Итоговая сумма подтверждена
    BALANCE_PAID = "balance_paid"  # Остаток оплачен
    SETTLEMENT_PAID = "settlement_paid"  # Выплата исполнителю проведена
    CLOSED = "closed"
    CANCELLED = "cancelled"

    # Статусы до выбора исполнителя
    PRE_MATCHING = (PENDING_DEPOSIT, OPEN)

    @classmethod
    def all_statuses(cls) -> list[str]:
        """Список всех статусов"""
        return [
            cls.PENDING_DEPOSIT,
            cls.OPEN,
            cls.SCHEDULED,
            cls.IN_PROGRESS,
            cls.CLOSING_SUBMITTED,
            cls.FINAL_AMOUNT_CONFIRMED,
            cls.BALANCE_PAID,
            cls.SETTLEMENT_PAID,
            cls.CLOSED,
            cls.CANCELLED,
        ]

    @classmethod
    def get_status_name(cls, status: str) -> str:
        """Получение названия статуса на русском"""
        names = {
            cls.PENDING_DEPOSIT: "Ожидает депозит",
            cls.OPEN: "Открыта",
            cls.SCHEDULED: "Исполнитель выбран",
            cls.IN_PROGRESS: "В работе",
            cls.CLOSING_SUBMITTED: "Отчёт отправлен",
            cls.FINAL_AMOUNT_CONFIRMED: "Сумма подтверждена",
            cls.BALANCE_PAID: "Остаток оплачен",
            cls.SETTLEMENT_PAID: "Выплата проведена",
            cls.CLOSED: "Закрыта",
            cls.CANCELLED: "Отменена",
        }
        return names.get(status, status)


class SettlementStatus:
    """Статусы расчёта с исполнителем"""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    PAYABLE = "payable"
    HOLD = "hold"
    PAID = "paid"
    REJECTED = "rejected"

    @classmethod
    def all_statuses(cls) -> list[str]:
        """Список всех статусов"""
        return [cls.PENDING, cls.CONFIRMED, cls.PAYABLE, cls.HOLD, cls.PAID, cls.REJECTED]

    @classmethod
    def get_status_name(cls, status: str) -> str:
        """Получение названия статуса на русском"""
        names = {
            cls.PENDING: "Ожидает проверки",
            cls.CONFIRMED: "Подтверждён",
            cls.PAYABLE: "К выплате",
            cls.HOLD: "Заморожен",
            cls.PAID: "Выплачен",
            cls.REJECTED: "Отклонён",
        }
        return names.get(status, status)


class ClosingReportStatus:
    """Статусы отчёта о закрытии"""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def all_statuses(cls) -> list[str]:
        return [cls.SUBMITTED, cls.APPROVED, cls.REJECTED]


class ApplicationStatus:
    """Статусы откликов исполнителей"""

    APPLIED = "applied"
    SELECTED = "selected"
    REJECTED = "rejected"

    @classmethod
    def all_statuses(cls) -> list[str]:
        return [cls.APPLIED, cls.SELECTED, cls.REJECTED]


class OrderCategory:
    """Категории заявок"""

    PARCEL = "parcel"  # Посылки, оплата за коробку
    OTHER = "other"  # Прочие доставки, оплата за точку
    COLD_CHAIN = "cold_chain"  # Рефрижератор, фиксированный фрахт

    @classmethod
    def all_categories(cls) -> list[str]:
        return [cls.PARCEL, cls.OTHER, cls.COLD_CHAIN]


class PricingMode:
    """Режимы тарификации"""

    PER_BOX = "per_box"
    PER_DROP = "per_drop"
    FLAT_FREIGHT = "flat_freight"

    @classmethod
    def all_modes(cls) -> list[str]:
        return [cls.PER_BOX, cls.PER_DROP, cls.FLAT_FREIGHT]

    @classmethod
    def for_category(cls, category: str) -> str:
        """Режим тарификации по умолчанию для категории"""
        defaults = {
            OrderCategory.PARCEL: cls.PER_BOX,
            OrderCategory.OTHER: cls.PER_DROP,
            OrderCategory.COLD_CHAIN: cls.FLAT_FREIGHT,
        }
        return defaults.get(category, cls.PER_BOX)


class DeductionType:
    """Типы удержаний"""

    DAMAGE = "damage"  # Повреждение груза
    LOSS = "loss"  # Утеря груза
    CLAIM = "claim"  # Претензия клиента
    ETC = "etc"

    @classmethod
    def all_types(cls) -> list[str]:
        return [cls.DAMAGE, cls.LOSS, cls.CLAIM, cls.ETC]


class IncidentStatus:
    """Статусы инцидентов с грузом"""

    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"

    @classmethod
    def all_statuses(cls) -> list[str]:
        return [cls.SUBMITTED, cls.CONFIRMED, cls.DISMISSED]


class PaymentKind:
    """Виды платежей заказчика"""

    DEPOSIT = "deposit"
    BALANCE = "balance"
    REFUND = "refund"

    @classmethod
    def all_kinds(cls) -> list[str]:
        return [cls.DEPOSIT, cls.BALANCE, cls.REFUND]


class PaymentStatus:
    """Статусы платежей"""

    REQUESTED = "requested"
    CAPTURED = "captured"  # Деньги списаны с заказчика
    REFUNDED = "refunded"  # Возврат перечислен заказчику
    FAILED = "failed"

    @classmethod
    def all_statuses(cls) -> list[str]:
        return [cls.REQUESTED, cls.CAPTURED, cls.REFUNDED, cls.FAILED]


class IntegrationChannel:
    """Каналы внешних интеграций"""

    NOTIFICATION = "notification"
    PAYMENT = "payment"


class IntegrationAction:
    """Действия внешних интеграций"""

    NOTIFY = "notify"
    CAPTURE = "capture"
    REFUND = "refund"
    PAYOUT = "payout"

    @classmethod
    def all_actions(cls) -> list[str]:
        return [cls.NOTIFY, cls.CAPTURE, cls.REFUND, cls.PAYOUT]


class IntegrationStatus:
    """Статусы задач внешних интеграций"""

    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"

    @classmethod
    def all_statuses(cls) -> list[str]:
        return [cls.PENDING, cls.RETRYING, cls.SUCCESS, cls.FAILED]


class AuditAction:
    """Действия, фиксируемые в журнале аудита"""

    ORDER_CREATED = "order.created"
    PAYMENT_REQUESTED = "payment.requested"
    PAYMENT_CONFIRMED = "payment.confirmed"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_REVERSED = "payment.reversed"
    BALANCE_COVERED = "payment.balance_covered"
    HELPER_APPLIED = "helper.applied"
    HELPER_SELECTED = "helper.selected"
    CHECKED_IN = "order.checked_in"
    CLOSING_SUBMITTED = "closing.submitted"
    CLOSING_APPROVED = "closing.approved"
    CLOSING_REJECTED = "closing.rejected"
    ORDER_CANCELLED = "order.cancelled"
    ORDER_CLOSED = "order.closed"
    INCIDENT_REPORTED = "incident.reported"
    INCIDENT_RESOLVED = "incident.resolved"
    DEDUCTION_ADDED = "settlement.deduction_added"
    SETTLEMENT_CONFIRMED = "settlement.confirmed"
    SETTLEMENT_PAYABLE = "settlement.payable"
    SETTLEMENT_HELD = "settlement.held"
    SETTLEMENT_RELEASED = "settlement.released"
    SETTLEMENT_PAID = "settlement.paid"
    SETTLEMENT_REJECTED = "settlement.rejected"
    INTEGRATION_FAILED = "integration.failed"


class NotificationEvent:
    """Типы уведомлений участникам"""

    ORDER_OPENED = "order_opened"
    NEW_APPLICATION = "new_application"
    HELPER_SELECTED = "helper_selected"
    APPLICATION_REJECTED = "application_rejected"
    HELPER_CHECKED_IN = "helper_checked_in"
    CLOSING_SUBMITTED = "closing_submitted"
    CLOSING_APPROVED = "closing_approved"
    CLOSING_REJECTED = "closing_rejected"
    ORDER_CANCELLED = "order_cancelled"
    SETTLEMENT_HELD = "settlement_held"
    SETTLEMENT_PAID = "settlement_paid"
    INCIDENT_REPORTED = "incident_reported"

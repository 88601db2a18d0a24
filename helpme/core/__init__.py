"""
Ядро приложения: конфигурация и константы
"""

from helpme.core.config import Config, Messages
from helpme.core.constants import (
    ApplicationStatus,
    ClosingReportStatus,
    DeductionType,
    IncidentStatus,
    OrderCategory,
    OrderStatus,
    PaymentKind,
    PaymentStatus,
    PricingMode,
    SettlementStatus,
    UserRole,
)


__all__ = [
    "ApplicationStatus",
    "ClosingReportStatus",
    "Config",
    "DeductionType",
    "IncidentStatus",
    "Messages",
    "OrderCategory",
    "OrderStatus",
    "PaymentKind",
    "PaymentStatus",
    "PricingMode",
    "SettlementStatus",
    "UserRole",
]

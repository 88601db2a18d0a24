"""
Модуль работы с базой данных
"""

from helpme.database.orm_database import ORMDatabase
from helpme.database.orm_models import (
    AuditEntry,
    Base,
    ClosingReport,
    Deduction,
    IncidentReport,
    IntegrationEvent,
    Order,
    OrderApplication,
    Payment,
    Settlement,
    User,
)


__all__ = [
    "AuditEntry",
    "Base",
    "ClosingReport",
    "Deduction",
    "IncidentReport",
    "IntegrationEvent",
    "ORMDatabase",
    "Order",
    "OrderApplication",
    "Payment",
    "Settlement",
    "User",
]

"""
Pydantic схемы для валидации команд и ответов
"""

from helpme.schemas.closing import (
    ApproveClosingCommand,
    ExtraCostItemSchema,
    RejectClosingCommand,
    SubmitClosingCommand,
)
from helpme.schemas.order import (
    Actor,
    ApplyCommand,
    CancelOrderCommand,
    CheckInCommand,
    CloseOrderCommand,
    OrderCommand,
    OrderCreateSchema,
    PaymentRequestCommand,
    PaymentResultCommand,
    SelectHelperCommand,
)
from helpme.schemas.read import (
    ApplicationRead,
    AuditEntryRead,
    ClosingReportRead,
    IncidentRead,
    OrderAggregate,
    OrderHistory,
    OrderRead,
    PaymentRead,
    SettlementRead,
)
from helpme.schemas.settlement import (
    AddDeductionCommand,
    HoldSettlementCommand,
    PaySettlementCommand,
    RejectSettlementCommand,
    ReportIncidentCommand,
    ResolveIncidentCommand,
    SettlementCommand,
)
from helpme.schemas.verification import PhoneSchema, VerifyCodeSchema


__all__ = [
    "Actor",
    "AddDeductionCommand",
    "ApplicationRead",
    "ApplyCommand",
    "ApproveClosingCommand",
    "AuditEntryRead",
    "CancelOrderCommand",
    "CheckInCommand",
    "CloseOrderCommand",
    "ClosingReportRead",
    "ExtraCostItemSchema",
    "HoldSettlementCommand",
    "IncidentRead",
    "OrderAggregate",
    "OrderCommand",
    "OrderCreateSchema",
    "OrderHistory",
    "OrderRead",
    "PaySettlementCommand",
    "PaymentRead",
    "PaymentRequestCommand",
    "PaymentResultCommand",
    "PhoneSchema",
    "RejectClosingCommand",
    "RejectSettlementCommand",
    "ReportIncidentCommand",
    "ResolveIncidentCommand",
    "SelectHelperCommand",
    "SettlementCommand",
    "SettlementRead",
    "SubmitClosingCommand",
    "VerifyCodeSchema",
]

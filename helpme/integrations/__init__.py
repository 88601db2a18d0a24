"""
Внешние сервисы: уведомления и платёжный шлюз
"""

from helpme.integrations.base import Notifier, PaymentGateway, PaymentResult
from helpme.integrations.notifiers import LoggingNotifier, NotifierError, TelegramNotifier
from helpme.integrations.payment_gateway import HttpPaymentGateway, InMemoryPaymentGateway


__all__ = [
    "HttpPaymentGateway",
    "InMemoryPaymentGateway",
    "LoggingNotifier",
    "Notifier",
    "NotifierError",
    "PaymentGateway",
    "PaymentResult",
    "TelegramNotifier",
]

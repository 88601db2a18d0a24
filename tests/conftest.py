"""
Pytest fixtures и конфигурация для тестов
"""
import sys
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio


# Добавляем корневую директорию в PYTHONPATH
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

from helpme.core.config import Config
from helpme.core.constants import UserRole
from helpme.database.orm_database import ORMDatabase
from helpme.integrations.payment_gateway import InMemoryPaymentGateway
from helpme.repositories.user_repository import UserRepository
from helpme.schemas.closing import ApproveClosingCommand, SubmitClosingCommand
from helpme.schemas.order import (
    Actor,
    ApplyCommand,
    CheckInCommand,
    OrderCreateSchema,
    SelectHelperCommand,
)
from helpme.schemas.read import OrderAggregate, SettlementRead
from helpme.services.service_factory import ServiceFactory


@pytest.fixture(autouse=True)
def mock_config(monkeypatch) -> None:
    """
    Фикстура для замены конфигурации на тестовую

    Одна попытка без задержки внутри прохода диспетчера,
    отмена после выбора исполнителя выключена.
    """
    monkeypatch.setattr(Config, "ENVIRONMENT", "test")
    monkeypatch.setattr(Config, "ADMIN_IDS", [])
    monkeypatch.setattr(Config, "NOTIFIER_BACKEND", "log")
    monkeypatch.setattr(Config, "PAYMENT_GATEWAY_BACKEND", "memory")
    monkeypatch.setattr(Config, "INTEGRATION_MAX_ATTEMPTS", 1)
    monkeypatch.setattr(Config, "INTEGRATION_BASE_DELAY", 0.0)
    monkeypatch.setattr(Config, "INTEGRATION_MAX_RETRIES", 3)
    monkeypatch.setattr(Config, "INTEGRATION_HANDLER_ATTEMPTS", 3)
    monkeypatch.setattr(Config, "INTEGRATION_PENDING_GRACE_SECONDS", 300)
    monkeypatch.setattr(Config, "ALLOW_POST_SELECTION_CANCEL", False)
    monkeypatch.setattr(Config, "MAX_APPLICANTS", 3)
    monkeypatch.setattr(Config, "RATE_LIMIT_ENABLED", True)


class RecordingNotifier:
    """Уведомления, которые запоминаются вместо отправки"""

    def __init__(self):
        self.sent: list[tuple[int, str, dict[str, Any]]] = []

    async def notify(self, user_id: int, event_type: str, payload: dict[str, Any]) -> None:
        self.sent.append((user_id, event_type, payload))

    def events_for(self, user_id: int) -> list[str]:
        return [event_type for recipient, event_type, _ in self.sent if recipient == user_id]


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[ORMDatabase, None]:
    """
    Фикстура для тестовой базы данных (SQLite файл во временной папке)
    """
    database = ORMDatabase(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await database.connect()
    await database.create_tables()
    yield database
    await database.disconnect()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def gateway() -> InMemoryPaymentGateway:
    return InMemoryPaymentGateway()


@pytest_asyncio.fixture
async def factory(db, notifier, gateway) -> AsyncGenerator[ServiceFactory, None]:
    """
    Фикстура фабрики сервисов с тестовыми интеграциями
    """
    service_factory = ServiceFactory(db, notifier=notifier, payment_gateway=gateway)
    yield service_factory
    await service_factory.close()


@dataclass
class Participants:
    """Участники тестового сценария"""

    requester: Actor
    other_requester: Actor
    helpers: list[Actor]
    admin: Actor


@pytest_asyncio.fixture
async def participants(db) -> Participants:
    """
    Фикстура с заказчиками, исполнителями и администратором в БД
    """
    async with db.get_session() as session:
        users = UserRepository(session)
        requester = await users.create(UserRole.REQUESTER, "Кудап Логистикс", phone="01012345678")
        other = await users.create(UserRole.REQUESTER, "Ханбит Маркет", phone="01087654321")
        helpers = [
            await users.create(UserRole.HELPER, f"Курьер {index}", phone=f"0102000000{index}")
            for index in range(1, 5)
        ]
        admin = await users.create(UserRole.ADMIN, "Оператор")

    return Participants(
        requester=Actor(id=requester.id, role=UserRole.REQUESTER),
        other_requester=Actor(id=other.id, role=UserRole.REQUESTER),
        helpers=[Actor(id=helper.id, role=UserRole.HELPER) for helper in helpers],
        admin=Actor(id=admin.id, role=UserRole.ADMIN),
    )


def make_order_data(**overrides: Any) -> OrderCreateSchema:
    """Заявка на 105 коробок по 1200 вон"""
    data = {
        "title": "Доставка посылок по Каннаму",
        "category": "parcel",
        "pickup_address": "Сеул, Каннам-гу, Тегеран-ро 152",
        "scheduled_start": date(2026, 11, 2),
        "scheduled_end": date(2026, 11, 2),
        "unit_price": 1200,
        "expected_box_count": 105,
    }
    data.update(overrides)
    return OrderCreateSchema(**data)


def make_closing(order_id: int, **overrides: Any) -> SubmitClosingCommand:
    data = {
        "order_id": order_id,
        "delivered_count": 105,
        "evidence_keys": ["proof/delivery-sheet.jpg"],
    }
    data.update(overrides)
    return SubmitClosingCommand(**data)


class LifecycleDriver:
    """
    Проводит заявку по статусам основного сценария

    После каждой операции с outbox-задачами дожидается диспетчера,
    чтобы результат платежей был применён.
    """

    def __init__(self, factory: ServiceFactory, participants: Participants):
        self.factory = factory
        self.people = participants
        self.orders = factory.order_service
        self.settlements = factory.settlement_service

    async def drain(self) -> None:
        await self.factory.dispatcher.drain()

    async def aggregate(self, order_id: int) -> OrderAggregate:
        return await self.orders.get_aggregate(order_id, self.people.admin)

    async def create(self, **overrides: Any) -> int:
        aggregate = await self.orders.create_order(make_order_data(**overrides), self.people.requester)
        return aggregate.order.id

    async def open(self, **overrides: Any) -> int:
        order_id = await self.create(**overrides)
        await self.orders.request_deposit_payment(order_id, self.people.requester)
        await self.drain()
        return order_id

    async def apply(self, order_id: int, helper: Actor) -> int:
        aggregate = await self.orders.apply_to_order(ApplyCommand(order_id=order_id), helper)
        await self.drain()
        return next(a.id for a in aggregate.applications if a.helper_id == helper.id)

    async def scheduled(self, **overrides: Any) -> int:
        order_id = await self.open(**overrides)
        application_id = await self.apply(order_id, self.people.helpers[0])
        await self.orders.select_helper(
            SelectHelperCommand(order_id=order_id, application_id=application_id),
            self.people.requester,
        )
        await self.drain()
        return order_id

    async def in_progress(self, **overrides: Any) -> int:
        order_id = await self.scheduled(**overrides)
        await self.orders.check_in(CheckInCommand(order_id=order_id), self.people.helpers[0])
        await self.drain()
        return order_id

    async def submitted(self, **closing: Any) -> int:
        order_id = await self.in_progress()
        await self.orders.submit_closing(make_closing(order_id, **closing), self.people.helpers[0])
        await self.drain()
        return order_id

    async def confirmed(self, **closing: Any) -> int:
        order_id = await self.submitted(**closing)
        await self.orders.approve_closing(
            ApproveClosingCommand(order_id=order_id), self.people.requester
        )
        await self.drain()
        return order_id

    async def balance_paid(self, **closing: Any) -> int:
        order_id = await self.confirmed(**closing)
        await self.orders.request_balance_payment(order_id, self.people.requester)
        await self.drain()
        return order_id

    async def settlement(self, order_id: int) -> SettlementRead:
        aggregate = await self.aggregate(order_id)
        assert aggregate.settlement is not None
        return aggregate.settlement


@pytest.fixture
def driver(factory, participants) -> LifecycleDriver:
    return LifecycleDriver(factory, participants)


@pytest.fixture
def order_data():
    """Фабрика данных заявки"""
    return make_order_data


@pytest.fixture
def closing_command():
    """Фабрика команды отчёта о закрытии"""
    return make_closing


class FakeClock:
    """Управляемые часы для TTLStore"""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

"""
Тесты HTTP интерфейса заявок и расчётов
"""
import pytest

from helpme.core.constants import OrderStatus, SettlementStatus
from helpme.schemas.order import Actor


pytestmark = pytest.mark.api


def headers_for(actor: Actor) -> dict[str, str]:
    return {"X-Actor-Id": str(actor.id), "X-Actor-Role": actor.role}


ORDER_BODY = {
    "title": "Доставка посылок по Каннаму",
    "category": "parcel",
    "pickup_address": "Сеул, Каннам-гу, Тегеран-ро 152",
    "scheduled_start": "2026-11-02",
    "scheduled_end": "2026-11-02",
    "unit_price": 1200,
    "expected_box_count": 105,
}


async def create_order(client, participants) -> dict:
    response = await client.post("/orders", json=ORDER_BODY, headers=headers_for(participants.requester))
    assert response.status_code == 201
    return response.json()


class TestOrdersApi:
    """Тесты эндпоинтов заявки"""

    async def test_create_order(self, client, participants):
        """Тест: создание заявки возвращает агрегат"""
        body = await create_order(client, participants)

        assert body["order"]["status"] == OrderStatus.PENDING_DEPOSIT
        assert body["order"]["deposit_amount"] == 27720
        assert body["applications"] == []

    async def test_missing_actor_headers(self, client):
        """Тест: без участника запроса доступ запрещён"""
        response = await client.post("/orders", json=ORDER_BODY)

        assert response.status_code == 403
        assert response.json()["code"] == "UNAUTHORIZED"

    async def test_invalid_role_header(self, client):
        """Тест: неизвестная роль"""
        response = await client.get("/orders/1", headers={"X-Actor-Id": "1", "X-Actor-Role": "boss"})
        assert response.status_code == 422

    async def test_invalid_body(self, client, participants):
        """Тест: ошибка валидации тела запроса"""
        response = await client.post(
            "/orders",
            json={**ORDER_BODY, "category": "furniture"},
            headers=headers_for(participants.requester),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "VALIDATION_FAILED"
        assert body["details"]["errors"]

    async def test_order_not_found(self, client, participants):
        """Тест: несуществующая заявка"""
        response = await client.get("/orders/999", headers=headers_for(participants.admin))

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_illegal_transition(self, client, participants):
        """Тест: check-in по заявке без исполнителя"""
        order = await create_order(client, participants)
        response = await client.post(
            f"/orders/{order['order']['id']}/check-in", headers=headers_for(participants.admin)
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "ILLEGAL_TRANSITION"
        assert body["details"]["from_state"] == OrderStatus.PENDING_DEPOSIT

    async def test_stale_version_conflict(self, client, participants):
        """Тест: устаревшая версия возвращает 409"""
        order = await create_order(client, participants)
        response = await client.post(
            f"/orders/{order['order']['id']}/payments",
            json={"kind": "deposit", "expected_version": 7},
            headers=headers_for(participants.requester),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CONCURRENT_MODIFICATION"

    async def test_cancel_after_selection_forbidden(self, client, driver, participants):
        """Тест: политика отмены возвращает 409"""
        order_id = await driver.scheduled()
        response = await client.post(
            f"/orders/{order_id}/cancel",
            json={"reason": "Передумали"},
            headers=headers_for(participants.requester),
        )

        assert response.status_code == 409
        assert response.json()["code"] == "CANCELLATION_POLICY"

    async def test_matching_flow(self, client, factory, participants):
        """Тест: депозит, отклик и выбор исполнителя через API"""
        requester = headers_for(participants.requester)
        helper = headers_for(participants.helpers[0])
        order_id = (await create_order(client, participants))["order"]["id"]

        response = await client.post(f"/orders/{order_id}/payments", json={"kind": "deposit"}, headers=requester)
        assert response.status_code == 201
        await factory.dispatcher.drain()

        response = await client.post(f"/orders/{order_id}/applications", headers=helper)
        assert response.status_code == 201
        application_id = response.json()["applications"][0]["id"]

        response = await client.post(
            f"/orders/{order_id}/select", json={"application_id": application_id}, headers=requester
        )
        assert response.status_code == 200
        assert response.json()["order"]["assigned_helper_id"] == participants.helpers[0].id
        await factory.dispatcher.drain()

        history = await client.get(f"/orders/{order_id}/history", headers=requester)
        assert history.status_code == 200
        assert history.json()["status_as_of"] == OrderStatus.SCHEDULED

        hidden = await client.get(f"/orders/{order_id}/history", headers=helper)
        assert hidden.status_code == 403

    async def test_rate_limit_headers(self, client, participants):
        """Тест: ответ содержит остаток лимита запросов"""
        response = await client.get("/orders/999", headers=headers_for(participants.admin))
        assert response.headers["X-RateLimit-Limit"] == "100"
        assert "X-Request-ID" in response.headers


class TestSettlementsApi:
    """Тесты эндпоинтов расчётов"""

    async def test_confirm_and_pay(self, client, driver, participants):
        """Тест: подтверждение и выплата через API"""
        admin = headers_for(participants.admin)
        order_id = await driver.balance_paid()
        settlement = await driver.settlement(order_id)

        response = await client.post(f"/settlements/{settlement.id}/confirm", headers=admin)
        assert response.status_code == 200
        assert response.json()["settlement"]["status"] == SettlementStatus.CONFIRMED

        response = await client.post(
            f"/settlements/{settlement.id}/pay", json={"reference": "KB-0001"}, headers=admin
        )
        assert response.status_code == 200
        assert response.json()["order"]["status"] == OrderStatus.SETTLEMENT_PAID
        await driver.drain()

        revisions = await client.get(f"/orders/{order_id}/settlements", headers=admin)
        assert [r["driver_payout"] for r in revisions.json()] == [124740]

    async def test_anomaly_conflict(self, client, driver, participants):
        """Тест: аномалия расчёта возвращает 409"""
        admin = headers_for(participants.admin)
        order_id = await driver.confirmed()

        response = await client.post(
            f"/orders/{order_id}/deductions",
            json={"deduction_type": "claim", "amount": 200000, "reason": "Претензия"},
            headers=admin,
        )
        assert response.status_code == 201
        settlement_id = response.json()["settlement"]["id"]

        response = await client.post(f"/settlements/{settlement_id}/confirm", headers=admin)
        assert response.status_code == 409
        assert response.json()["code"] == "CALCULATION_ANOMALY"

    async def test_revisions_admin_only(self, client, driver, participants):
        """Тест: список ревизий только для администратора"""
        order_id = await driver.confirmed()
        response = await client.get(
            f"/orders/{order_id}/settlements", headers=headers_for(participants.requester)
        )
        assert response.status_code == 403

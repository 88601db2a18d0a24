"""
Реализации платёжного шлюза
"""

import itertools
import logging
from typing import Any

import httpx

from helpme.domain.exceptions import ExternalCollaboratorError
from helpme.integrations.base import PaymentResult


logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class InMemoryPaymentGateway:
    """
    Платёжный шлюз в памяти (локальный запуск и тесты)

    Все операции успешны, пока не задан сбой через fail_next().
    Повтор с ключом уже выполненной операции возвращает прежний
    результат и не попадает в calls.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.idempotency_keys: list[str | None] = []
        self._completed: dict[str, PaymentResult] = {}
        self._failures: list[ExternalCollaboratorError] = []
        self._counter = itertools.count(1)

    def fail_next(self, times: int = 1, retryable: bool = True, message: str = "gateway unavailable"):
        """Следующие times вызовов завершатся ошибкой"""
        for _ in range(times):
            self._failures.append(ExternalCollaboratorError("payment_gateway", message, retryable))

    async def _call(
        self, operation: str, idempotency_key: str | None = None, **params: Any
    ) -> PaymentResult:
        if idempotency_key is not None and idempotency_key in self._completed:
            logger.info("Платёжный шлюз (memory): повтор %s по ключу %s", operation, idempotency_key)
            return self._completed[idempotency_key]

        self.calls.append((operation, params))
        self.idempotency_keys.append(idempotency_key)
        if self._failures:
            raise self._failures.pop(0)
        reference = f"{operation}-{next(self._counter):06d}"
        logger.info("Платёжный шлюз (memory): %s %s -> %s", operation, params, reference)

        result = PaymentResult(success=True, reference=reference)
        if idempotency_key is not None:
            self._completed[idempotency_key] = result
        return result

    async def capture(
        self, order_id: int, amount: int, kind: str, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._call(
            "capture", idempotency_key, order_id=order_id, amount=amount, kind=kind
        )

    async def refund(
        self, order_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._call("refund", idempotency_key, order_id=order_id, amount=amount)

    async def payout(
        self, order_id: int, helper_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._call(
            "payout", idempotency_key, order_id=order_id, helper_id=helper_id, amount=amount
        )


class HttpPaymentGateway:
    """
    HTTP клиент платёжного шлюза

    Контракт: POST {base_url}/{operation} с JSON телом и заголовком
    Idempotency-Key, ответ {"success": bool, "reference": str, "message": str}.
    Шлюз не выполняет повторно операцию с уже известным ключом.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"} if api_key else {},
        )

    async def close(self):
        await self._client.aclose()

    async def _post(
        self, operation: str, body: dict[str, Any], idempotency_key: str | None = None
    ) -> PaymentResult:
        url = f"{self.base_url}/{operation}"
        headers = {IDEMPOTENCY_HEADER: idempotency_key} if idempotency_key else None
        try:
            response = await self._client.post(url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise ExternalCollaboratorError("payment_gateway", f"timeout: {e}") from e
        except httpx.TransportError as e:
            raise ExternalCollaboratorError("payment_gateway", f"transport error: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise ExternalCollaboratorError(
                "payment_gateway", f"HTTP {response.status_code}", retryable=True
            )
        if response.status_code >= 400:
            raise ExternalCollaboratorError(
                "payment_gateway",
                f"HTTP {response.status_code}: {response.text[:200]}",
                retryable=False,
            )

        data = response.json()
        result = PaymentResult(
            success=bool(data.get("success")),
            reference=data.get("reference"),
            message=data.get("message"),
        )
        if not result.success:
            raise ExternalCollaboratorError(
                "payment_gateway", result.message or f"{operation} отклонён", retryable=False
            )
        return result

    async def capture(
        self, order_id: int, amount: int, kind: str, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._post(
            "capture", {"order_id": order_id, "amount": amount, "kind": kind}, idempotency_key
        )

    async def refund(
        self, order_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._post("refund", {"order_id": order_id, "amount": amount}, idempotency_key)

    async def payout(
        self, order_id: int, helper_id: int, amount: int, idempotency_key: str | None = None
    ) -> PaymentResult:
        return await self._post(
            "payout",
            {"order_id": order_id, "helper_id": helper_id, "amount": amount},
            idempotency_key,
        )

"""
Тесты для вспомогательных функций
"""
from datetime import datetime

import pytest

from helpme.utils.helpers import canonical_json, get_now, mask_phone, payload_digest


def test_get_now_is_naive_utc():
    """Тест: время хранится без tzinfo"""
    now = get_now()
    assert isinstance(now, datetime)
    assert now.tzinfo is None


def test_canonical_json_is_order_independent():
    """Тест: порядок ключей не влияет на сериализацию"""
    assert canonical_json({"b": 1, "a": [1, 2]}) == canonical_json({"a": [1, 2], "b": 1})
    assert canonical_json({"reason": "отмена"}) == '{"reason":"отмена"}'


def test_payload_digest():
    """Тест: SHA-256 от канонического JSON"""
    digest = payload_digest({"order_id": 1, "kind": "deposit"})

    assert len(digest) == 64
    assert digest == payload_digest({"kind": "deposit", "order_id": 1})
    assert digest != payload_digest({"order_id": 2, "kind": "deposit"})


@pytest.mark.parametrize(
    ("phone", "expected"),
    [
        ("010-1234-5678", "010-****-5678"),
        ("01012345678", "010-****-5678"),
        ("1234", "****"),
        (None, ""),
    ],
)
def test_mask_phone(phone, expected):
    """Тест маскирования телефона для логов"""
    assert mask_phone(phone) == expected

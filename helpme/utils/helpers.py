"""
Вспомогательные функции
"""

import hashlib
import json
from datetime import UTC, datetime
from typing import Any


def get_now() -> datetime:
    """
    Текущее время в UTC без tzinfo (так время хранится в БД)

    Returns:
        naive datetime в UTC
    """
    return datetime.now(UTC).replace(tzinfo=None)


def canonical_json(payload: Any) -> str:
    """Детерминированная JSON-сериализация (сортировка ключей, без пробелов)"""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def payload_digest(payload: Any) -> str:
    """
    SHA-256 от канонического JSON

    Args:
        payload: Любая JSON-совместимая структура

    Returns:
        hex-дайджест
    """
    return hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()


def mask_phone(phone: str | None) -> str:
    """Маскирование телефона для логов: 010-****-5678"""
    if not phone:
        return ""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) < 8:
        return "*" * len(digits)
    return f"{digits[:3]}-****-{digits[-4:]}"

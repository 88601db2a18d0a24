"""Утилиты и вспомогательные функции"""
from helpme.utils.helpers import canonical_json, get_now, mask_phone, payload_digest
from helpme.utils.retry import compute_delay, retry_async
from helpme.utils.ttl_store import TTLStore


__all__ = [
    "TTLStore",
    "canonical_json",
    "compute_delay",
    "get_now",
    "mask_phone",
    "payload_digest",
    "retry_async",
]

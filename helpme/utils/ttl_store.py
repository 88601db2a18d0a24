"""
Хранилище ключ-значение с временем жизни записей

Используется вместо глобальных словарей для кодов подтверждения и счётчиков
rate limiting. Истёкшие записи не возвращаются и удаляются по индексу
сроков (heap) при purge_expired().
"""

import heapq
import logging
import time
from collections.abc import Callable
from typing import Any


logger = logging.getLogger(__name__)


class TTLStore:
    """Хранилище с TTL и индексом истечения"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: Источник времени в секундах (подменяется в тестах)
        """
        self._clock = clock
        self._data: dict[str, tuple[Any, float]] = {}
        self._expiry: list[tuple[float, str]] = []

    def __len__(self) -> int:
        return len(self._data)

    def now(self) -> float:
        return self._clock()

    def set(self, key: str, value: Any, ttl: float) -> float:
        """
        Сохранение значения

        Args:
            key: Ключ
            value: Значение
            ttl: Время жизни в секундах

        Returns:
            Момент истечения записи
        """
        if ttl <= 0:
            raise ValueError("ttl должен быть положительным")
        expires_at = self._clock() + ttl
        self._data[key] = (value, expires_at)
        heapq.heappush(self._expiry, (expires_at, key))
        return expires_at

    def replace(self, key: str, value: Any) -> bool:
        """Замена значения без изменения срока жизни"""
        item = self._live_item(key)
        if item is None:
            return False
        self._data[key] = (value, item[1])
        return True

    def get(self, key: str, default: Any = None) -> Any:
        item = self._live_item(key)
        return default if item is None else item[0]

    def expires_at(self, key: str) -> float | None:
        item = self._live_item(key)
        return None if item is None else item[1]

    def pop(self, key: str, default: Any = None) -> Any:
        item = self._live_item(key)
        if item is None:
            return default
        del self._data[key]
        return item[0]

    def _live_item(self, key: str) -> tuple[Any, float] | None:
        item = self._data.get(key)
        if item is None:
            return None
        if item[1] <= self._clock():
            del self._data[key]
            return None
        return item

    def purge_expired(self) -> int:
        """
        Удаление истёкших записей

        Returns:
            Количество удалённых записей
        """
        now = self._clock()
        removed = 0
        while self._expiry and self._expiry[0][0] <= now:
            expires_at, key = heapq.heappop(self._expiry)
            item = self._data.get(key)
            # Запись могла быть перезаписана с новым сроком
            if item is not None and item[1] == expires_at:
                del self._data[key]
                removed += 1
        if removed:
            logger.debug("TTLStore: удалено истёкших записей: %s", removed)
        return removed

"""
Базовый репозиторий для работы с базой данных
"""

import logging
import re
from typing import Any, Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpme.repositories.exceptions import ConcurrentModificationError, EntityNotFoundError


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Таблицы с version_id_col: orders, settlements
_VERSIONED_TABLES = {"orders": "Order", "settlements": "Settlement"}


def conflict_from_stale_data(error: StaleDataError) -> ConcurrentModificationError:
    """
    ConcurrentModificationError по StaleDataError, пойманному вне save()

    Конфликт при autoflush перед запросом или при commit: id записи
    неизвестен, тип берётся из имени таблицы в сообщении SQLAlchemy.
    """
    match = re.search(r"table '(\w+)'", str(error))
    table = match.group(1) if match else ""
    return ConcurrentModificationError(_VERSIONED_TABLES.get(table, table or "entity"), None, None)


def is_write_conflict(error: OperationalError) -> bool:
    """SQLite отказал в блокировке записи: параллельная транзакция уже пишет"""
    return "database is locked" in str(error.orig)


class BaseRepository(Generic[T]):
    """
    Базовый класс для всех репозиториев
    Предоставляет общую функциональность для работы с БД
    """

    model: type[T]

    def __init__(self, session: AsyncSession):
        """
        Инициализация репозитория

        Args:
            session: Сессия текущей транзакции
        """
        self.session = session

    @property
    def entity_type(self) -> str:
        return self.model.__name__

    async def get(self, entity_id: int) -> T | None:
        """
        Получение записи по ID

        Args:
            entity_id: ID записи

        Returns:
            Запись или None
        """
        return await self.session.get(self.model, entity_id)

    async def get_or_raise(self, entity_id: int) -> T:
        """
        Получение записи по ID

        Raises:
            EntityNotFoundError: Если запись не найдена
        """
        entity = await self.get(entity_id)
        if entity is None:
            raise EntityNotFoundError(self.entity_type, entity_id)
        return entity

    async def add(self, entity: T) -> T:
        """
        Добавление записи (с flush для получения ID)

        Args:
            entity: Новая запись

        Returns:
            Та же запись с присвоенным ID
        """
        self.session.add(entity)
        await self.session.flush()
        return entity

    async def _find(self, *criteria: Any, order_by: Any = None) -> list[T]:
        stmt = select(self.model).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def save(self, entity: Any) -> None:
        """
        Flush изменений записи с optimistic locking

        UPDATE выполняется с условием WHERE version = <загруженная версия>.

        Args:
            entity: Изменённая запись с полем version

        Raises:
            ConcurrentModificationError: Запись изменена другим запросом
        """
        expected_version = getattr(entity, "version", 0)
        try:
            await self.session.flush()
        except StaleDataError as e:
            logger.warning(
                "Конфликт версий %s #%s (версия %s): %s",
                type(entity).__name__,
                entity.id,
                expected_version,
                e,
            )
            raise ConcurrentModificationError(
                type(entity).__name__, entity.id, expected_version
            ) from e

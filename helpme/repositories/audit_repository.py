"""
Журнал аудита (только добавление)
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select

from helpme.database.orm_models import AuditEntry
from helpme.repositories.base import BaseRepository
from helpme.utils.helpers import get_now, payload_digest


logger = logging.getLogger(__name__)


class AuditRepository(BaseRepository[AuditEntry]):
    """
    Репозиторий журнала аудита

    Изменение и удаление не поддерживаются: исправления записываются
    новыми компенсирующими записями.
    """

    model = AuditEntry

    async def append(
        self,
        action: str,
        actor_id: int | None,
        actor_role: str,
        entity_type: str,
        entity_id: int | None,
        order_id: int | None = None,
        before_status: str | None = None,
        after_status: str | None = None,
        order_status: str | None = None,
        before_values: dict[str, Any] | None = None,
        after_values: dict[str, Any] | None = None,
        payload: Any = None,
    ) -> AuditEntry:
        """
        Добавление записи в журнал

        Args:
            action: Код действия (AuditAction)
            actor_id: ID участника (None для системы)
            actor_role: Роль участника
            entity_type: Тип сущности (order, settlement, ...)
            entity_id: ID сущности
            order_id: ID заявки, к которой относится запись
            before_status: Статус сущности до изменения
            after_status: Статус сущности после изменения
            order_status: Статус заявки после изменения (для восстановления истории)
            before_values: Значения полей до изменения
            after_values: Значения полей после изменения
            payload: Входные данные команды (сохраняется только SHA-256)

        Returns:
            Созданная запись
        """
        entry = AuditEntry(
            order_id=order_id,
            actor_id=actor_id,
            actor_role=actor_role,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            before_status=before_status,
            after_status=after_status,
            order_status=order_status,
            before_values=before_values,
            after_values=after_values,
            payload_digest=payload_digest(payload if payload is not None else {}),
            created_at=get_now(),
        )
        await self.add(entry)
        logger.debug("Аудит: %s %s #%s (заявка #%s)", action, entity_type, entity_id, order_id)
        return entry

    async def history(self, order_id: int, until: datetime | None = None) -> list[AuditEntry]:
        """
        История заявки в хронологическом порядке

        Args:
            order_id: ID заявки
            until: Учитывать записи не позже этого момента

        Returns:
            Список записей
        """
        stmt = select(AuditEntry).where(AuditEntry.order_id == order_id)
        if until is not None:
            stmt = stmt.where(AuditEntry.created_at <= until)
        stmt = stmt.order_by(AuditEntry.created_at, AuditEntry.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def status_as_of(self, order_id: int, moment: datetime) -> str | None:
        """
        Статус заявки на заданный момент

        Args:
            order_id: ID заявки
            moment: Момент времени

        Returns:
            Статус заявки или None, если заявка ещё не существовала
        """
        stmt = (
            select(AuditEntry.order_status)
            .where(
                AuditEntry.order_id == order_id,
                AuditEntry.created_at <= moment,
                AuditEntry.order_status.is_not(None),
            )
            .order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

"""
Репозиторий задач внешних интеграций (outbox)
"""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, or_, select

from helpme.core.constants import IntegrationStatus
from helpme.database.orm_models import IntegrationEvent
from helpme.repositories.base import BaseRepository
from helpme.utils.helpers import get_now


class IntegrationEventRepository(BaseRepository[IntegrationEvent]):
    """Репозиторий outbox-задач"""

    model = IntegrationEvent

    async def enqueue(
        self,
        channel: str,
        action: str,
        payload: dict[str, Any],
        order_id: int | None = None,
    ) -> IntegrationEvent:
        """
        Постановка задачи в outbox (в текущей транзакции)

        Args:
            channel: Канал (notification, payment)
            action: Действие (notify, capture, refund, payout)
            payload: Параметры вызова
            order_id: ID заявки

        Returns:
            Созданная задача
        """
        event = IntegrationEvent(
            order_id=order_id,
            channel=channel,
            action=action,
            payload=payload,
            status=IntegrationStatus.PENDING,
        )
        return await self.add(event)

    async def get_due(
        self,
        now: datetime | None = None,
        limit: int = 50,
        pending_grace: timedelta = timedelta(minutes=5),
    ) -> list[IntegrationEvent]:
        """
        Задачи, готовые к повторному выполнению

        Args:
            now: Текущее время
            limit: Максимум задач за проход
            pending_grace: Сколько pending задача ждёт фонового выполнения

        Returns:
            Задачи в статусе retrying с наступившим временем повтора
            и pending задачи, созданные раньше now - pending_grace
        """
        now = now or get_now()
        stmt = (
            select(IntegrationEvent)
            .where(
                or_(
                    and_(
                        IntegrationEvent.status == IntegrationStatus.RETRYING,
                        or_(
                            IntegrationEvent.next_retry_at.is_(None),
                            IntegrationEvent.next_retry_at <= now,
                        ),
                    ),
                    and_(
                        IntegrationEvent.status == IntegrationStatus.PENDING,
                        IntegrationEvent.created_at <= now - pending_grace,
                    ),
                )
            )
            .order_by(IntegrationEvent.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_order(self, order_id: int) -> list[IntegrationEvent]:
        return await self._find(IntegrationEvent.order_id == order_id, order_by=IntegrationEvent.id)

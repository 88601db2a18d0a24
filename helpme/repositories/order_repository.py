"""
Репозитории заявок и откликов исполнителей
"""

import logging

from sqlalchemy import func, select

from helpme.core.constants import ApplicationStatus
from helpme.database.orm_models import Order, OrderApplication
from helpme.repositories.base import BaseRepository
from helpme.repositories.exceptions import ConcurrentModificationError


logger = logging.getLogger(__name__)


class OrderRepository(BaseRepository[Order]):
    """Репозиторий для работы с заявками"""

    model = Order

    async def get_for_update(self, order_id: int, expected_version: int | None = None) -> Order:
        """
        Загрузка заявки для изменения

        Args:
            order_id: ID заявки
            expected_version: Версия, которую видел клиент (если передана)

        Returns:
            Заявка

        Raises:
            EntityNotFoundError: Заявка не найдена
            ConcurrentModificationError: Версия не совпадает с ожидаемой
        """
        order = await self.get_or_raise(order_id)
        if expected_version is not None and order.version != expected_version:
            logger.info(
                "Заявка #%s: клиент ожидал версию %s, текущая %s",
                order_id,
                expected_version,
                order.version,
            )
            raise ConcurrentModificationError("Order", order_id, expected_version, order.version)
        return order


class ApplicationRepository(BaseRepository[OrderApplication]):
    """Репозиторий откликов исполнителей"""

    model = OrderApplication

    async def list_for_order(self, order_id: int) -> list[OrderApplication]:
        return await self._find(OrderApplication.order_id == order_id, order_by=OrderApplication.id)

    async def get_for_helper(self, order_id: int, helper_id: int) -> OrderApplication | None:
        stmt = select(OrderApplication).where(
            OrderApplication.order_id == order_id,
            OrderApplication.helper_id == helper_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def count_active(self, order_id: int) -> int:
        """Количество действующих откликов на заявку"""
        stmt = select(func.count(OrderApplication.id)).where(
            OrderApplication.order_id == order_id,
            OrderApplication.status.in_([ApplicationStatus.APPLIED, ApplicationStatus.SELECTED]),
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

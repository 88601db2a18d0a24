"""
Репозиторий платежей заказчика
"""

from sqlalchemy import select

from helpme.core.constants import PaymentStatus
from helpme.database.orm_models import Payment
from helpme.repositories.base import BaseRepository


class PaymentRepository(BaseRepository[Payment]):
    """Репозиторий платежей"""

    model = Payment

    async def get_open(self, order_id: int, kind: str) -> Payment | None:
        """Неподтверждённый платёж заданного вида"""
        stmt = select(Payment).where(
            Payment.order_id == order_id,
            Payment.kind == kind,
            Payment.status == PaymentStatus.REQUESTED,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_order(self, order_id: int) -> list[Payment]:
        return await self._find(Payment.order_id == order_id, order_by=Payment.id)

"""
Репозитории расчётов, удержаний и инцидентов
"""

import logging

from sqlalchemy import func, select

from helpme.core.constants import IncidentStatus
from helpme.database.orm_models import Deduction, IncidentReport, Settlement
from helpme.repositories.base import BaseRepository
from helpme.utils.helpers import get_now


logger = logging.getLogger(__name__)


class SettlementRepository(BaseRepository[Settlement]):
    """Репозиторий расчётов с исполнителями"""

    model = Settlement

    async def get_current(self, order_id: int) -> Settlement | None:
        """Действующая ревизия расчёта заявки"""
        stmt = select(Settlement).where(
            Settlement.order_id == order_id,
            Settlement.is_current.is_(True),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_revisions(self, order_id: int) -> list[Settlement]:
        """Все ревизии расчёта, включая замещённые"""
        return await self._find(Settlement.order_id == order_id, order_by=Settlement.revision)

    async def supersede(self, current: Settlement, replacement: Settlement) -> Settlement:
        """
        Замещение действующей ревизии новой

        Старая запись не удаляется и не перезаписывается по суммам:
        она помечается superseded, новая получает следующий номер ревизии.

        Args:
            current: Действующая ревизия
            replacement: Новая ревизия (ещё не добавлена в сессию)

        Returns:
            Добавленная новая ревизия

        Raises:
            ConcurrentModificationError: Действующая ревизия изменена другим запросом
        """
        current.is_current = False
        current.superseded_at = get_now()
        await self.save(current)

        replacement.revision = current.revision + 1
        replacement.is_current = True
        await self.add(replacement)

        logger.info(
            "Расчёт заявки #%s: ревизия %s замещена ревизией %s",
            current.order_id,
            current.revision,
            replacement.revision,
        )
        return replacement


class DeductionRepository(BaseRepository[Deduction]):
    """Репозиторий удержаний"""

    model = Deduction

    async def list_for_order(self, order_id: int) -> list[Deduction]:
        return await self._find(Deduction.order_id == order_id, order_by=Deduction.id)

    async def total_for_order(self, order_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Deduction.amount), 0)).where(
            Deduction.order_id == order_id
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())


class IncidentRepository(BaseRepository[IncidentReport]):
    """Репозиторий инцидентов с грузом"""

    model = IncidentReport

    async def list_for_order(self, order_id: int) -> list[IncidentReport]:
        return await self._find(IncidentReport.order_id == order_id, order_by=IncidentReport.id)

    async def confirmed_total(self, order_id: int) -> int:
        """Сумма подтверждённых удержаний по инцидентам"""
        stmt = select(func.coalesce(func.sum(IncidentReport.deduction_amount), 0)).where(
            IncidentReport.order_id == order_id,
            IncidentReport.status == IncidentStatus.CONFIRMED,
        )
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

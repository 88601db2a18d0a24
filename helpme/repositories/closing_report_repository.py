"""
Репозиторий отчётов о закрытии
"""

from sqlalchemy import func, select

from helpme.core.constants import ClosingReportStatus
from helpme.database.orm_models import ClosingReport
from helpme.repositories.base import BaseRepository


class ClosingReportRepository(BaseRepository[ClosingReport]):
    """Репозиторий отчётов о закрытии (ревизии)"""

    model = ClosingReport

    async def get_active(self, order_id: int) -> ClosingReport | None:
        """
        Действующий отчёт заявки: отправленный или подтверждённый

        Отклонённые ревизии остаются в истории и действующими не считаются.
        """
        stmt = (
            select(ClosingReport)
            .where(
                ClosingReport.order_id == order_id,
                ClosingReport.status.in_(
                    [ClosingReportStatus.SUBMITTED, ClosingReportStatus.APPROVED]
                ),
            )
            .order_by(ClosingReport.revision.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def next_revision(self, order_id: int) -> int:
        stmt = select(func.max(ClosingReport.revision)).where(ClosingReport.order_id == order_id)
        result = await self.session.execute(stmt)
        return (result.scalar_one() or 0) + 1

    async def list_for_order(self, order_id: int) -> list[ClosingReport]:
        return await self._find(ClosingReport.order_id == order_id, order_by=ClosingReport.revision)

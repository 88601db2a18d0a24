"""
Планировщик фоновых задач
"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from helpme.core.config import Config
from helpme.services.integration_dispatcher import IntegrationDispatcher
from helpme.utils.ttl_store import TTLStore


logger = logging.getLogger(__name__)


class TaskScheduler:
    """Планировщик: повтор outbox-задач и очистка истёкших записей TTLStore"""

    def __init__(
        self,
        dispatcher: IntegrationDispatcher,
        ttl_stores: list[TTLStore] | None = None,
        retry_interval: int | None = None,
    ):
        """
        Инициализация планировщика

        Args:
            dispatcher: Диспетчер outbox-задач
            ttl_stores: Хранилища, которые нужно периодически чистить
            retry_interval: Интервал проверки задач к повтору (секунды)
        """
        self.dispatcher = dispatcher
        self.ttl_stores = ttl_stores or []
        self.retry_interval = retry_interval or Config.INTEGRATION_RETRY_INTERVAL
        self.scheduler = AsyncIOScheduler()

    async def start(self):
        """Запуск планировщика"""
        # Повтор задач внешних интеграций
        self.scheduler.add_job(
            self.retry_integrations,
            trigger=IntervalTrigger(seconds=self.retry_interval),
            id="retry_integrations",
            name="Повтор задач интеграций",
            replace_existing=True,
            max_instances=1,
        )

        # Очистка истёкших кодов и счётчиков
        self.scheduler.add_job(
            self.purge_ttl_stores,
            trigger=IntervalTrigger(minutes=1),
            id="purge_ttl_stores",
            name="Очистка TTL хранилищ",
            replace_existing=True,
        )

        self.scheduler.start()
        logger.info("Планировщик задач запущен")

    async def stop(self):
        """Остановка планировщика"""
        self.scheduler.shutdown(wait=True)
        logger.info("Планировщик задач остановлен")

    async def retry_integrations(self) -> int:
        """Повтор задач с наступившим временем"""
        try:
            processed = await self.dispatcher.process_due()
        except Exception as e:
            logger.error(f"Ошибка повтора задач интеграций: {e}", exc_info=True)
            return 0
        if processed:
            logger.info(f"Повторено задач интеграций: {processed}")
        return processed

    async def purge_ttl_stores(self) -> int:
        """Удаление истёкших записей во всех хранилищах"""
        removed = sum(store.purge_expired() for store in self.ttl_stores)
        if removed:
            logger.debug(f"Удалено истёкших записей TTL: {removed}")
        return removed

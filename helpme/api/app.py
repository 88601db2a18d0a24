"""
HTTP приложение (FastAPI)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from helpme.api.deps import rate_limit
from helpme.api.errors import register_exception_handlers
from helpme.api.middleware import request_logging_middleware
from helpme.api.routers import auth, orders, payments, settlements
from helpme.database.orm_database import ORMDatabase
from helpme.services.rate_limiter import API
from helpme.services.service_factory import ServiceFactory


logger = logging.getLogger(__name__)


def create_app(factory: ServiceFactory | None = None, start_scheduler: bool = True) -> FastAPI:
    """
    Создание приложения

    Args:
        factory: Готовая фабрика сервисов (тесты передают свою)
        start_scheduler: Запускать ли фоновые задачи

    Returns:
        FastAPI приложение
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_db = app.state.factory is None
        if owns_db:
            db = ORMDatabase()
            await db.connect()
            await db.create_tables()
            app.state.factory = ServiceFactory(db)
            logger.info("База данных подключена")

        service_factory: ServiceFactory = app.state.factory
        if start_scheduler:
            await service_factory.scheduler.start()

        try:
            yield
        finally:
            logger.info("Остановка приложения...")
            if start_scheduler:
                await service_factory.scheduler.stop()
            await service_factory.close()
            if owns_db:
                await service_factory.db.disconnect()
            logger.info("Приложение остановлено")

    app = FastAPI(title="HelpMe lifecycle engine", version="1.0.0", lifespan=lifespan)
    # ASGITransport в тестах не запускает lifespan, поэтому фабрика ставится сразу
    app.state.factory = factory

    app.middleware("http")(request_logging_middleware)
    register_exception_handlers(app)

    api_limit = [Depends(rate_limit(API))]
    app.include_router(orders.router, dependencies=api_limit)
    app.include_router(settlements.router, dependencies=api_limit)
    app.include_router(payments.router, dependencies=api_limit)
    app.include_router(auth.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app

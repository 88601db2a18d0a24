"""
Подключение к БД заявок и расчётов (SQLAlchemy async)

Одна сессия = одна транзакция операции жизненного цикла:
commit при выходе из блока, rollback при любой ошибке.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from helpme.core.config import Config
from helpme.database.orm_models import Base


logger = logging.getLogger(__name__)


def resolve_database_url() -> str:
    """DATABASE_URL из окружения, иначе файл SQLite из DATABASE_PATH"""
    return Config.DATABASE_URL or f"sqlite+aiosqlite:///{Config.DATABASE_PATH}"


def _sqlite_pragmas(dbapi_connection, connection_record):
    # FK на users/orders/closing_reports в SQLite выключены по умолчанию
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class ORMDatabase:
    """Движок, фабрика сессий и схема БД"""

    def __init__(self, database_url: str | None = None):
        """
        Args:
            database_url: async URL (sqlite+aiosqlite:// или postgresql+asyncpg://)
        """
        self.database_url = database_url or resolve_database_url()
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    def _engine_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
        if self.is_sqlite:
            options["connect_args"] = {"check_same_thread": False}
        else:
            options["pool_recycle"] = 3600
        return options

    async def connect(self):
        """Создание движка и фабрики сессий"""
        backend = "SQLite" if self.is_sqlite else "PostgreSQL"
        logger.info("Подключение к БД заявок (%s)...", backend)
        try:
            self.engine = create_async_engine(self.database_url, **self._engine_options())
        except Exception as e:
            logger.error("ERROR: Не удалось создать движок БД: %s", e)
            raise

        if self.is_sqlite:
            event.listen(self.engine.sync_engine, "connect", _sqlite_pragmas)

        # объекты остаются читаемыми после commit (read-модели строятся после транзакции)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info("OK: БД подключена, схема применяется через 'alembic upgrade head'")

    def _require_engine(self) -> AsyncEngine:
        if self.engine is None:
            raise RuntimeError("БД не подключена: вызовите connect()")
        return self.engine

    async def create_tables(self):
        """Схема по ORM моделям без Alembic (тесты, локальный запуск)"""
        async with self._require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("OK: Схема заявок и расчётов создана (%s таблиц)", len(Base.metadata.tables))

    async def disconnect(self):
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None
            logger.info("БД отключена")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """
        Транзакция операции

        Usage:
            async with db.get_session() as session:
                order = await OrderRepository(session).get_for_update(order_id)
        """
        self._require_engine()
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.debug("Rollback транзакции: %s: %s", type(e).__name__, e)
                raise

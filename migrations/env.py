"""
Alembic environment configuration
"""
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import engine_from_config, pool
from alembic import context

# Добавляем корневую директорию в путь
sys.path.insert(0, str(Path(__file__).parent.parent))

from helpme.core.config import Config

config = context.config


def _sync_database_url() -> str:
    """URL для Alembic: миграции выполняются синхронным драйвером"""
    if Config.DATABASE_URL:
        return Config.DATABASE_URL.replace("+aiosqlite", "").replace("+asyncpg", "")
    return f"sqlite:///{Config.DATABASE_PATH}"


config.set_main_option('sqlalchemy.url', _sync_database_url())

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Импортируем ORM модели для автогенерации миграций
from helpme.database.orm_models import Base
target_metadata = Base.metadata


def include_name(name, type_, parent_names):
    """Фильтр для игнорирования некоторых объектов при автогенерации"""
    # Игнорируем временные таблицы Alembic
    if type_ == "table" and name.startswith("_alembic"):
        return False
    return True


def include_object(object, name, type_, reflected, compare_to):
    """Фильтр для игнорирования некоторых изменений при автогенерации"""
    # Внешние ключи в SQLite часто без имён
    if type_ == "foreign_key_constraint":
        return False
    return True


def _configure_kwargs() -> dict:
    return {
        "target_metadata": target_metadata,
        "render_as_batch": True,  # Важно для SQLite при ALTER TABLE
        "compare_type": False,
        "compare_server_default": False,
        "include_name": include_name,
        "include_object": include_object,
    }


def run_migrations_offline() -> None:
    """Генерация SQL без подключения к БД"""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_configure_kwargs(),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Применение миграций к БД"""
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(connection=connection, **_configure_kwargs())

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""
Репозитории для работы с данными

Репозитории работают поверх AsyncSession и не управляют транзакциями:
commit/rollback выполняет вызывающий код через ORMDatabase.get_session().
"""

from helpme.repositories.exceptions import (
    AppendOnlyViolationError,
    ConcurrentModificationError,
    EntityNotFoundError,
    RepositoryError,
)


__all__ = [
    "AppendOnlyViolationError",
    "ConcurrentModificationError",
    "EntityNotFoundError",
    "RepositoryError",
]

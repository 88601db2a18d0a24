"""
Исключения для работы с репозиториями
"""


class RepositoryError(Exception):
    """Базовое исключение для репозиториев"""


class ConcurrentModificationError(RepositoryError):
    """
    Исключение при конфликте версий (optimistic locking)

    Возникает когда запись была изменена другим процессом между
    чтением и попыткой обновления. Если конфликт обнаружен при flush
    внутри транзакции, id записи и версия неизвестны.
    """

    code = "CONCURRENT_MODIFICATION"

    def __init__(
        self,
        entity_type: str,
        entity_id: int | None,
        expected_version: int | None,
        actual_version: int | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if entity_id is None:
            self.message = f"{entity_type} изменён другим запросом. Обновите данные и повторите."
        else:
            self.message = (
                f"{entity_type} #{entity_id} изменён другим запросом "
                f"(ожидалась версия {expected_version}). Обновите данные и повторите."
            )
        self.details = {
            "entity_type": entity_type,
            "entity_id": entity_id,
            "expected_version": expected_version,
            "actual_version": actual_version,
        }
        super().__init__(self.message)


class EntityNotFoundError(RepositoryError):
    """
    Исключение при отсутствии записи
    """

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.message = f"{entity_type} #{entity_id} не найден"
        self.details = {"entity_type": entity_type, "entity_id": entity_id}
        super().__init__(self.message)


class AppendOnlyViolationError(RepositoryError):
    """
    Исключение при попытке изменить или удалить запись журнала аудита
    """

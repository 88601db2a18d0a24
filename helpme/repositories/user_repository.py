"""
Репозиторий участников
"""

from helpme.database.orm_models import User
from helpme.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Репозиторий для работы с участниками"""

    model = User

    async def create(
        self,
        role: str,
        name: str,
        phone: str | None = None,
        telegram_chat_id: int | None = None,
    ) -> User:
        """
        Создание участника

        Args:
            role: Роль (requester, helper, admin)
            name: Имя или название компании
            phone: Телефон
            telegram_chat_id: Чат для уведомлений

        Returns:
            Созданный участник
        """
        user = User(role=role, name=name, phone=phone, telegram_chat_id=telegram_chat_id)
        return await self.add(user)

    async def get_chat_id(self, user_id: int) -> int | None:
        """Telegram чат участника для уведомлений"""
        user = await self.get(user_id)
        if user is None or not user.is_active:
            return None
        return user.telegram_chat_id

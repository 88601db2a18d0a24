"""
Фикстуры HTTP клиента
"""
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from helpme.api.app import create_app


@pytest_asyncio.fixture
async def client(factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Клиент приложения с тестовой фабрикой сервисов (без планировщика)
    """
    app = create_app(factory, start_scheduler=False)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

"""
Per-service HTTP clients.

Each client talks to the real FastAPI app in-process, with the database
dependency bound to the test session. Auth is not overridden: tests send
real HS256 tokens (see ``service_headers`` / ``admin_headers``).
"""

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from libs.db.session import get_async_db


@pytest_asyncio.fixture
async def payments_client(
    db_session, fake_email_client
) -> AsyncGenerator[AsyncClient, None]:
    from libs.common.emails.client import get_email_client
    from services.payments_service.app.main import app

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_email_client] = lambda: fake_email_client

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def communications_client(db_session) -> AsyncGenerator[AsyncClient, None]:
    from services.communications_service.app.main import app

    app.dependency_overrides[get_async_db] = lambda: db_session

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()

"""App fixture for API tests.

The app runs on FakeDriver and a shared in-memory SQLite database.
``ASGITransport`` does not run the lifespan, so tables and the bootstrap
admin are created here.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from minecharts.config import SecurityConfig
from minecharts.db.session import get_session_dependency, seed_admin
from minecharts.db.store import CredentialStore, SQLCredentialStore
from minecharts.main import create_app
from tests.fakes import FakeDriver


@dataclass
class ApiHarness:
    app: FastAPI
    client: httpx.AsyncClient
    driver: FakeDriver

    async def login(self, username: str, password: str) -> dict[str, str]:
        resp = await self.client.post(
            "/v1/auth/login", json={"username": username, "password": password}
        )
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['token']}"}

    async def register(self, username: str, password: str = "password123") -> tuple[int, dict[str, str]]:
        resp = await self.client.post(
            "/v1/auth/register",
            json={"username": username, "email": f"{username}@example.com", "password": password},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        return body["user_id"], {"Authorization": f"Bearer {body['token']}"}

    async def admin(self) -> dict[str, str]:
        return await self.login("admin", "admin")

    async def grant(self, user_id: int, permissions: int) -> None:
        resp = await self.client.patch(
            f"/v1/users/{user_id}",
            json={"permissions": permissions},
            headers=await self.admin(),
        )
        assert resp.status_code == 200, resp.text


@pytest.fixture
async def api() -> AsyncIterator[ApiHarness]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        await seed_admin(session, SecurityConfig())

    @asynccontextmanager
    async def store_factory() -> AsyncIterator[CredentialStore]:
        async with session_factory() as session:
            yield SQLCredentialStore(session)

    async def override_session():
        async with session_factory() as session:
            yield session

    driver = FakeDriver()
    app = create_app(driver=driver, store_factory=store_factory)
    app.dependency_overrides[get_session_dependency] = override_session

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield ApiHarness(app=app, client=client, driver=driver)

    await app.state.api_key_usage.drain()
    await engine.dispose()

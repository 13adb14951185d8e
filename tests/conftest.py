"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

import minecharts.models  # noqa: F401
from minecharts.config import ExecutorConfig, KubernetesConfig, SecurityConfig
from tests.fakes import FakeDriver, InMemoryCredentialStore


@pytest.fixture
def k8s_config() -> KubernetesConfig:
    return KubernetesConfig(namespace="test-ns", storage_class=None)


@pytest.fixture
def executor_config() -> ExecutorConfig:
    return ExecutorConfig(timeout_seconds=2.0)


@pytest.fixture
def security_config() -> SecurityConfig:
    return SecurityConfig(jwt_secret="test-secret", jwt_expiry_hours=1)


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
async def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()

"""Credential store.

Holds users, API keys and server ownership records. ``CredentialStore`` is
the narrow interface the auth chain and lifecycle orchestrator consume;
``SQLCredentialStore`` backs it with SQLModel on an async session.

Every method raises ``NotFoundError`` / ``AlreadyExistsError`` for domain
misses and ``DownstreamError`` when the database itself fails.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

import structlog
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from minecharts.auth.api_keys import hash_key
from minecharts.errors import AlreadyExistsError, DownstreamError, NotFoundError
from minecharts.models.api_key import ApiKey
from minecharts.models.server import MinecraftServer, ServerStatus
from minecharts.models.user import User
from minecharts.utils.datetime import utcnow

logger = structlog.get_logger()


class CredentialStore(ABC):
    """Persistence interface for users, API keys and server records."""

    # Users

    @abstractmethod
    async def create_user(self, user: User) -> User: ...

    @abstractmethod
    async def get_user_by_id(self, user_id: int) -> User: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> User: ...

    @abstractmethod
    async def get_user_by_oauth_subject(self, subject: str) -> User: ...

    @abstractmethod
    async def update_user(self, user: User) -> User: ...

    @abstractmethod
    async def delete_user(self, user_id: int) -> None: ...

    @abstractmethod
    async def list_users(self) -> list[User]: ...

    @abstractmethod
    async def count_users(self) -> int: ...

    # API keys

    @abstractmethod
    async def create_api_key(self, api_key: ApiKey) -> ApiKey: ...

    @abstractmethod
    async def get_api_key(self, plaintext: str) -> ApiKey:
        """Look up a key by its presented plaintext value."""
        ...

    @abstractmethod
    async def get_api_key_by_id(self, key_id: int) -> ApiKey: ...

    @abstractmethod
    async def delete_api_key(self, key_id: int) -> None: ...

    @abstractmethod
    async def list_api_keys_by_user(self, user_id: int) -> list[ApiKey]: ...

    @abstractmethod
    async def touch_api_key(self, key_id: int, when: datetime) -> None:
        """Record key usage. Missing keys are ignored."""
        ...

    # Servers

    @abstractmethod
    async def create_server_record(self, server: MinecraftServer) -> MinecraftServer: ...

    @abstractmethod
    async def get_server_by_name(self, server_name: str) -> MinecraftServer: ...

    @abstractmethod
    async def list_servers_by_owner(self, owner_id: int) -> list[MinecraftServer]: ...

    @abstractmethod
    async def list_servers(self) -> list[MinecraftServer]: ...

    @abstractmethod
    async def update_server_status(
        self, server_name: str, status: ServerStatus
    ) -> MinecraftServer: ...

    @abstractmethod
    async def delete_server_record(self, server_name: str) -> None: ...


class SQLCredentialStore(CredentialStore):
    """SQLModel-backed credential store bound to one session."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session
        self._log = logger.bind(store="sql")

    async def _commit(self, operation: str, conflict: str | None = None) -> None:
        try:
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            if conflict is None:
                raise DownstreamError(f"{operation} failed: integrity error") from e
            raise AlreadyExistsError(conflict) from e
        except SQLAlchemyError as e:
            await self._db.rollback()
            self._log.error("store.commit_failed", operation=operation, error=type(e).__name__)
            raise DownstreamError(f"{operation} failed") from e

    async def _first(self, operation: str, statement):
        try:
            result = await self._db.execute(statement)
        except SQLAlchemyError as e:
            self._log.error("store.query_failed", operation=operation, error=type(e).__name__)
            raise DownstreamError(f"{operation} failed") from e
        return result.scalars().first()

    async def _all(self, operation: str, statement) -> list:
        try:
            result = await self._db.execute(statement)
        except SQLAlchemyError as e:
            self._log.error("store.query_failed", operation=operation, error=type(e).__name__)
            raise DownstreamError(f"{operation} failed") from e
        return list(result.scalars().all())

    # Users

    async def create_user(self, user: User) -> User:
        self._db.add(user)
        await self._commit("create_user", conflict="Username or email already exists")
        await self._db.refresh(user)
        self._log.info("store.user.created", user_id=user.id, username=user.username)
        return user

    async def get_user_by_id(self, user_id: int) -> User:
        user = await self._first("get_user", select(User).where(User.id == user_id))
        if user is None:
            raise NotFoundError(f"User not found: {user_id}")
        return user

    async def get_user_by_username(self, username: str) -> User:
        user = await self._first(
            "get_user_by_username", select(User).where(User.username == username)
        )
        if user is None:
            raise NotFoundError(f"User not found: {username}")
        return user

    async def get_user_by_oauth_subject(self, subject: str) -> User:
        user = await self._first(
            "get_user_by_oauth_subject", select(User).where(User.oauth_subject == subject)
        )
        if user is None:
            raise NotFoundError("User not found for identity-provider subject")
        return user

    async def update_user(self, user: User) -> User:
        user.updated_at = utcnow()
        self._db.add(user)
        await self._commit("update_user", conflict="Username or email already exists")
        await self._db.refresh(user)
        return user

    async def delete_user(self, user_id: int) -> None:
        user = await self.get_user_by_id(user_id)
        # sqlite does not enforce ON DELETE CASCADE unless the pragma is on
        await self._db.execute(delete(ApiKey).where(ApiKey.user_id == user_id))
        await self._db.delete(user)
        await self._commit("delete_user")
        self._log.info("store.user.deleted", user_id=user_id)

    async def list_users(self) -> list[User]:
        return await self._all("list_users", select(User).order_by(User.id))

    async def count_users(self) -> int:
        try:
            result = await self._db.execute(select(func.count()).select_from(User))
        except SQLAlchemyError as e:
            raise DownstreamError("count_users failed") from e
        return int(result.scalar_one())

    # API keys

    async def create_api_key(self, api_key: ApiKey) -> ApiKey:
        self._db.add(api_key)
        await self._commit("create_api_key", conflict="API key already exists")
        await self._db.refresh(api_key)
        return api_key

    async def get_api_key(self, plaintext: str) -> ApiKey:
        api_key = await self._first(
            "get_api_key", select(ApiKey).where(ApiKey.key_hash == hash_key(plaintext))
        )
        if api_key is None:
            raise NotFoundError("API key not found")
        return api_key

    async def get_api_key_by_id(self, key_id: int) -> ApiKey:
        api_key = await self._first("get_api_key_by_id", select(ApiKey).where(ApiKey.id == key_id))
        if api_key is None:
            raise NotFoundError(f"API key not found: {key_id}")
        return api_key

    async def delete_api_key(self, key_id: int) -> None:
        api_key = await self.get_api_key_by_id(key_id)
        await self._db.delete(api_key)
        await self._commit("delete_api_key")

    async def list_api_keys_by_user(self, user_id: int) -> list[ApiKey]:
        return await self._all(
            "list_api_keys",
            select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.id),
        )

    async def touch_api_key(self, key_id: int, when: datetime) -> None:
        api_key = await self._first("touch_api_key", select(ApiKey).where(ApiKey.id == key_id))
        if api_key is None:
            return
        api_key.last_used = when
        self._db.add(api_key)
        await self._commit("touch_api_key")

    # Servers

    async def create_server_record(self, server: MinecraftServer) -> MinecraftServer:
        self._db.add(server)
        await self._commit(
            "create_server_record",
            conflict=f"Server already exists: {server.server_name}",
        )
        await self._db.refresh(server)
        return server

    async def get_server_by_name(self, server_name: str) -> MinecraftServer:
        server = await self._first(
            "get_server",
            select(MinecraftServer).where(MinecraftServer.server_name == server_name),
        )
        if server is None:
            raise NotFoundError(f"Server not found: {server_name}")
        return server

    async def list_servers_by_owner(self, owner_id: int) -> list[MinecraftServer]:
        return await self._all(
            "list_servers_by_owner",
            select(MinecraftServer)
            .where(MinecraftServer.owner_id == owner_id)
            .order_by(MinecraftServer.id),
        )

    async def list_servers(self) -> list[MinecraftServer]:
        return await self._all(
            "list_servers", select(MinecraftServer).order_by(MinecraftServer.id)
        )

    async def update_server_status(
        self, server_name: str, status: ServerStatus
    ) -> MinecraftServer:
        server = await self.get_server_by_name(server_name)
        server.status = status
        server.updated_at = utcnow()
        self._db.add(server)
        await self._commit("update_server_status")
        await self._db.refresh(server)
        return server

    async def delete_server_record(self, server_name: str) -> None:
        server = await self.get_server_by_name(server_name)
        await self._db.delete(server)
        await self._commit("delete_server_record")

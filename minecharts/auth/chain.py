"""Request authentication.

An ``AuthChain`` asks each ``Authenticator`` in turn. An authenticator
returns a ``Principal`` when its credential resolves, ``None`` when the
request doesn't carry its kind of credential, and raises
``AuthenticationError`` when the credential is present but bad. The first
principal wins; inactive accounts are rejected after resolution.

    chain = AuthChain([
        BearerTokenAuthenticator(store, tokens),
        ApiKeyAuthenticator(store, recorder),
    ])
    principal = await chain.authenticate(Credentials.from_headers(headers))
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Literal

import structlog

from minecharts.auth.api_keys import display_prefix
from minecharts.auth.permissions import Permission
from minecharts.auth.tokens import TokenService
from minecharts.db.store import CredentialStore
from minecharts.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidApiKeyError,
    NotFoundError,
)
from minecharts.models.user import User
from minecharts.utils.datetime import is_expired, utcnow

logger = structlog.get_logger()

API_KEY_HEADER = "X-API-Key"

AuthMethod = Literal["jwt", "api_key"]


@dataclass(frozen=True)
class Credentials:
    """Raw credentials extracted from a request."""

    authorization: str | None = None
    api_key: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "Credentials":
        return cls(
            authorization=headers.get("Authorization") or headers.get("authorization"),
            api_key=headers.get(API_KEY_HEADER) or headers.get(API_KEY_HEADER.lower()),
        )


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a request."""

    user_id: int
    username: str
    email: str
    permissions: Permission
    active: bool
    method: AuthMethod
    api_key_id: int | None = None

    @classmethod
    def from_user(
        cls, user: User, method: AuthMethod, *, api_key_id: int | None = None
    ) -> "Principal":
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email,
            permissions=user.capabilities,
            active=user.active,
            method=method,
            api_key_id=api_key_id,
        )

    @property
    def is_admin(self) -> bool:
        return self.permissions.is_admin


class Authenticator(ABC):
    """One credential scheme."""

    name: str = "abstract"

    @abstractmethod
    async def authenticate(self, credentials: Credentials) -> Principal | None:
        """Resolve ``credentials``.

        Returns None when this scheme does not apply to the request.
        Raises AuthenticationError when it applies but fails.
        """
        ...


class BearerTokenAuthenticator(Authenticator):
    """``Authorization: Bearer <jwt>``."""

    name = "jwt"

    def __init__(self, store: CredentialStore, tokens: TokenService) -> None:
        self._store = store
        self._tokens = tokens

    async def authenticate(self, credentials: Credentials) -> Principal | None:
        header = credentials.authorization
        if not header:
            return None

        scheme, _, token = header.strip().partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Authorization header format must be Bearer {token}")

        claims = self._tokens.validate(token.strip())
        try:
            user = await self._store.get_user_by_id(claims.user_id)
        except NotFoundError as e:
            raise AuthenticationError("User not found") from e
        return Principal.from_user(user, "jwt")


class ApiKeyUsageRecorder:
    """Fire-and-forget ``last_used`` updates.

    Each update runs in its own task with its own store, so the request
    that triggered it never waits on or sees its outcome.
    """

    def __init__(
        self,
        store_factory: Callable[[], AbstractAsyncContextManager[CredentialStore]],
    ) -> None:
        self._store_factory = store_factory
        self._tasks: set[asyncio.Task] = set()

    def record(self, key_id: int) -> None:
        task = asyncio.create_task(self._touch(key_id, utcnow()))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _touch(self, key_id, when) -> None:
        try:
            async with self._store_factory() as store:
                await store.touch_api_key(key_id, when)
        except Exception:
            logger.warning("auth.api_key.touch_failed", api_key_id=key_id, exc_info=True)

    async def drain(self) -> None:
        """Wait for pending updates (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ApiKeyAuthenticator(Authenticator):
    """``X-API-Key: <key>``."""

    name = "api_key"

    def __init__(
        self,
        store: CredentialStore,
        usage: ApiKeyUsageRecorder | None = None,
    ) -> None:
        self._store = store
        self._usage = usage

    async def authenticate(self, credentials: Credentials) -> Principal | None:
        presented = credentials.api_key
        if not presented:
            return None

        try:
            api_key = await self._store.get_api_key(presented)
        except NotFoundError as e:
            logger.info("auth.api_key.unknown", key_prefix=display_prefix(presented))
            raise InvalidApiKeyError() from e

        if is_expired(api_key.expires_at):
            logger.info("auth.api_key.expired", api_key_id=api_key.id)
            raise InvalidApiKeyError("API key has expired")

        try:
            user = await self._store.get_user_by_id(api_key.user_id)
        except NotFoundError as e:
            raise InvalidApiKeyError("API key owner no longer exists") from e

        if self._usage is not None:
            self._usage.record(api_key.id)

        return Principal.from_user(user, "api_key", api_key_id=api_key.id)


class AuthChain:
    """Ordered list of authenticators; first resolved principal wins."""

    def __init__(self, authenticators: Sequence[Authenticator]) -> None:
        self._authenticators = list(authenticators)

    async def authenticate(self, credentials: Credentials) -> Principal:
        for authenticator in self._authenticators:
            principal = await authenticator.authenticate(credentials)
            if principal is None:
                continue

            if not principal.active:
                logger.info(
                    "auth.rejected.inactive",
                    user_id=principal.user_id,
                    method=authenticator.name,
                )
                raise AuthorizationError("User account is inactive")

            logger.debug("auth.success", user_id=principal.user_id, method=authenticator.name)
            return principal

        raise AuthenticationError("Authentication required")

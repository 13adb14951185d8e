"""FastAPI dependencies for the Minecharts API.

Provides dependency injection for:
- Database sessions and the credential store
- Driver, executor and managers
- Authentication (AuthChain) and permission checks
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from minecharts.auth.chain import (
    ApiKeyAuthenticator,
    ApiKeyUsageRecorder,
    AuthChain,
    BearerTokenAuthenticator,
    Credentials,
    Principal,
)
from minecharts.auth.oauth import AuthentikProvider, OAuthProvider
from minecharts.auth.permissions import Permission
from minecharts.auth.resolver import PermissionResolver
from minecharts.auth.tokens import TokenService
from minecharts.config import Settings, get_settings
from minecharts.db.session import get_session_dependency
from minecharts.db.store import CredentialStore, SQLCredentialStore
from minecharts.drivers.base import Driver
from minecharts.errors import NotFoundError
from minecharts.managers.lifecycle import LifecycleOrchestrator
from minecharts.managers.network import NetworkExposureManager
from minecharts.services.executor import RemoteExecutor

logger = structlog.get_logger()


def get_app_settings() -> Settings:
    return get_settings()


def get_driver(request: Request) -> Driver:
    """Driver constructed once in ``create_app``."""
    return request.app.state.driver


def get_usage_recorder(request: Request) -> ApiKeyUsageRecorder:
    return request.app.state.api_key_usage


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
DriverDep = Annotated[Driver, Depends(get_driver)]
SessionDep = Annotated[AsyncSession, Depends(get_session_dependency)]


async def get_store(session: SessionDep) -> CredentialStore:
    return SQLCredentialStore(session)


StoreDep = Annotated[CredentialStore, Depends(get_store)]


def get_token_service(settings: SettingsDep) -> TokenService:
    return TokenService(settings.security)


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]


async def get_auth_chain(
    store: StoreDep,
    tokens: TokenServiceDep,
    usage: Annotated[ApiKeyUsageRecorder, Depends(get_usage_recorder)],
) -> AuthChain:
    return AuthChain(
        [
            BearerTokenAuthenticator(store, tokens),
            ApiKeyAuthenticator(store, usage),
        ]
    )


async def get_current_principal(
    request: Request,
    chain: Annotated[AuthChain, Depends(get_auth_chain)],
) -> Principal:
    """Resolve the caller. Raises 401/403 via the error handler."""
    principal = await chain.authenticate(Credentials.from_headers(request.headers))
    request.state.principal = principal
    return principal


PrincipalDep = Annotated[Principal, Depends(get_current_principal)]


async def get_permission_resolver(store: StoreDep) -> PermissionResolver:
    return PermissionResolver(store)


ResolverDep = Annotated[PermissionResolver, Depends(get_permission_resolver)]


def require_permission(flag: Permission):
    """Factory for a global capability check.

    Returns a dependency that yields the principal if it holds ``flag``
    (or is an admin).
    """

    async def dependency(principal: PrincipalDep, resolver: ResolverDep) -> Principal:
        resolver.require_permission(principal, flag)
        return principal

    return dependency


def require_server_permission(flag: Permission):
    """Factory for a per-server capability check.

    Reads the ``server_name`` path parameter. Owners pass operational
    checks on their own servers without holding ``flag``.
    """

    async def dependency(
        server_name: str,
        principal: PrincipalDep,
        resolver: ResolverDep,
    ) -> Principal:
        await resolver.require_server_permission(principal, flag, server_name)
        return principal

    return dependency


AdminDep = Annotated[Principal, Depends(require_permission(Permission.ADMIN))]


# Orchestration


async def get_executor(driver: DriverDep, settings: SettingsDep) -> RemoteExecutor:
    return RemoteExecutor(
        driver,
        settings.executor,
        container=settings.kubernetes.container_name,
    )


async def get_network_manager(driver: DriverDep, settings: SettingsDep) -> NetworkExposureManager:
    return NetworkExposureManager(driver, settings.kubernetes)


NetworkManagerDep = Annotated[NetworkExposureManager, Depends(get_network_manager)]


async def get_orchestrator(
    driver: DriverDep,
    store: StoreDep,
    executor: Annotated[RemoteExecutor, Depends(get_executor)],
    network: NetworkManagerDep,
    settings: SettingsDep,
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(
        driver=driver,
        store=store,
        executor=executor,
        network=network,
        k8s_config=settings.kubernetes,
    )


OrchestratorDep = Annotated[LifecycleOrchestrator, Depends(get_orchestrator)]


# Identity providers


def get_oauth_provider(provider: str, request: Request, settings: SettingsDep) -> OAuthProvider:
    """Resolve the ``{provider}`` path parameter to a configured provider."""
    oauth = settings.oauth
    if oauth.enabled and provider == "authentik" and oauth.authentik.enabled:
        return AuthentikProvider(oauth.authentik, request.app.state.http.client)
    raise NotFoundError(f"OAuth provider not available: {provider}")


OAuthProviderDep = Annotated[OAuthProvider, Depends(get_oauth_provider)]

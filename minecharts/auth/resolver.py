"""Permission checks for authenticated principals."""

from __future__ import annotations

import structlog

from minecharts.auth.chain import Principal
from minecharts.auth.permissions import Permission, owner_may_bypass
from minecharts.db.store import CredentialStore
from minecharts.errors import AuthorizationError, NotFoundError
from minecharts.models.server import MinecraftServer

logger = structlog.get_logger()


class PermissionResolver:
    """Authorizes a principal against a capability, optionally per server.

    Owners may run operational actions on their own servers without the
    global flag. Ownership never grants ``ADMIN``.
    """

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def require_permission(self, principal: Principal, flag: Permission) -> None:
        if principal.permissions.is_admin_or_has(flag):
            return
        logger.info(
            "auth.permission.denied",
            user_id=principal.user_id,
            required=flag.names(),
        )
        raise AuthorizationError(
            "Permission denied",
            details={"required": flag.names()},
        )

    async def require_server_permission(
        self,
        principal: Principal,
        flag: Permission,
        server_name: str | None,
    ) -> MinecraftServer | None:
        """Check ``flag`` for ``server_name``.

        Returns the server record when it was resolved, so callers don't
        look it up twice. Unknown servers fall back to the global check.
        """
        if not server_name:
            self.require_permission(principal, flag)
            return None

        try:
            server = await self._store.get_server_by_name(server_name)
        except NotFoundError:
            self.require_permission(principal, flag)
            return None

        if server.owner_id == principal.user_id and owner_may_bypass(flag):
            return server

        self.require_permission(principal, flag)
        return server

"""Unit tests for PermissionResolver."""

from __future__ import annotations

import pytest

from minecharts.auth.chain import Principal
from minecharts.auth.permissions import SINGLE_FLAGS, Permission
from minecharts.auth.resolver import PermissionResolver
from minecharts.errors import AuthorizationError
from minecharts.models.server import MinecraftServer


def _principal(user_id: int, permissions: Permission) -> Principal:
    return Principal(
        user_id=user_id,
        username=f"user{user_id}",
        email=f"user{user_id}@example.com",
        permissions=permissions,
        active=True,
        method="jwt",
    )


@pytest.fixture
def resolver(store) -> PermissionResolver:
    return PermissionResolver(store)


@pytest.fixture
async def alice_server(store) -> MinecraftServer:
    return await store.create_server_record(
        MinecraftServer(
            server_name="alice-survival",
            workload_name="minecraft-server-alice-survival",
            volume_claim_name="minecraft-server-alice-survival-pvc",
            owner_id=1,
        )
    )


class TestGlobalPermission:
    def test_holder_allowed(self, resolver):
        resolver.require_permission(_principal(1, Permission.CREATE_SERVER), Permission.CREATE_SERVER)

    def test_denied_reports_required(self, resolver):
        with pytest.raises(AuthorizationError) as exc_info:
            resolver.require_permission(_principal(1, Permission.READ_ONLY), Permission.CREATE_SERVER)
        assert exc_info.value.details == {"required": ["create_server"]}

    @pytest.mark.parametrize("flag", SINGLE_FLAGS)
    def test_admin_allowed_everything(self, resolver, flag):
        resolver.require_permission(_principal(1, Permission.ADMIN), flag)


class TestServerPermission:
    async def test_owner_bypasses_operational_flag(self, resolver, alice_server):
        server = await resolver.require_server_permission(
            _principal(1, Permission.NONE), Permission.STOP_SERVER, "alice-survival"
        )
        assert server is alice_server

    async def test_owner_never_gets_admin(self, resolver, alice_server):
        with pytest.raises(AuthorizationError):
            await resolver.require_server_permission(
                _principal(1, Permission.NONE), Permission.ADMIN, "alice-survival"
            )

    async def test_non_owner_needs_flag(self, resolver, alice_server):
        with pytest.raises(AuthorizationError):
            await resolver.require_server_permission(
                _principal(2, Permission.READ_ONLY), Permission.STOP_SERVER, "alice-survival"
            )

    async def test_non_owner_with_flag(self, resolver, alice_server):
        server = await resolver.require_server_permission(
            _principal(2, Permission.STOP_SERVER), Permission.STOP_SERVER, "alice-survival"
        )
        assert server is alice_server

    async def test_admin_on_foreign_server(self, resolver, alice_server):
        await resolver.require_server_permission(
            _principal(2, Permission.ADMIN), Permission.DELETE_SERVER, "alice-survival"
        )

    async def test_unknown_server_falls_back_to_global(self, resolver):
        assert (
            await resolver.require_server_permission(
                _principal(2, Permission.STOP_SERVER), Permission.STOP_SERVER, "ghost"
            )
            is None
        )
        with pytest.raises(AuthorizationError):
            await resolver.require_server_permission(
                _principal(2, Permission.NONE), Permission.STOP_SERVER, "ghost"
            )

    async def test_no_server_name(self, resolver):
        with pytest.raises(AuthorizationError):
            await resolver.require_server_permission(
                _principal(1, Permission.NONE), Permission.CREATE_SERVER, None
            )

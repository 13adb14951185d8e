"""Unit tests for SQLCredentialStore.

Runs against in-memory SQLite.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from minecharts.auth.api_keys import generate_key
from minecharts.auth.passwords import verify_password
from minecharts.auth.permissions import Permission
from minecharts.config import SecurityConfig
from minecharts.db.session import seed_admin
from minecharts.db.store import SQLCredentialStore
from minecharts.errors import AlreadyExistsError, NotFoundError
from minecharts.models.api_key import ApiKey
from minecharts.models.server import MinecraftServer, ServerStatus
from minecharts.utils.datetime import utcnow
from tests.fakes import make_user


@pytest.fixture
def sql_store(db_session) -> SQLCredentialStore:
    return SQLCredentialStore(db_session)


def _server(name: str, owner_id: int) -> MinecraftServer:
    return MinecraftServer(
        server_name=name,
        workload_name=f"minecraft-server-{name}",
        volume_claim_name=f"minecraft-server-{name}-pvc",
        owner_id=owner_id,
    )


class TestUsers:
    async def test_create_and_fetch(self, sql_store):
        user = await sql_store.create_user(make_user("alice", Permission.OPERATOR))

        assert user.id is not None
        by_id = await sql_store.get_user_by_id(user.id)
        by_name = await sql_store.get_user_by_username("alice")
        assert by_id.id == by_name.id == user.id
        assert by_id.capabilities == Permission.OPERATOR

    async def test_duplicate_username(self, sql_store):
        await sql_store.create_user(make_user("alice"))

        dup = make_user("alice")
        dup.email = "other@example.com"
        with pytest.raises(AlreadyExistsError):
            await sql_store.create_user(dup)

        # Session is usable after the rollback
        assert await sql_store.count_users() == 1

    async def test_missing_user(self, sql_store):
        with pytest.raises(NotFoundError):
            await sql_store.get_user_by_id(999)
        with pytest.raises(NotFoundError):
            await sql_store.get_user_by_username("ghost")

    async def test_lookup_by_oauth_subject(self, sql_store):
        linked = make_user("steve")
        linked.oauth_subject = "idp-42"
        linked = await sql_store.create_user(linked)
        await sql_store.create_user(make_user("alice"))

        assert (await sql_store.get_user_by_oauth_subject("idp-42")).id == linked.id
        with pytest.raises(NotFoundError):
            await sql_store.get_user_by_oauth_subject("idp-43")

    async def test_update(self, sql_store):
        user = await sql_store.create_user(make_user("alice"))
        before = user.updated_at

        user.permissions = int(Permission.ALL)
        updated = await sql_store.update_user(user)

        assert updated.capabilities.is_admin
        assert updated.updated_at >= before

    async def test_delete_removes_api_keys(self, sql_store):
        user = await sql_store.create_user(make_user("alice"))
        plaintext, key_hash, key_prefix = generate_key("mcapi")
        await sql_store.create_api_key(
            ApiKey(user_id=user.id, key_hash=key_hash, key_prefix=key_prefix)
        )

        await sql_store.delete_user(user.id)

        with pytest.raises(NotFoundError):
            await sql_store.get_user_by_id(user.id)
        with pytest.raises(NotFoundError):
            await sql_store.get_api_key(plaintext)

    async def test_list_and_count(self, sql_store):
        await sql_store.create_user(make_user("alice"))
        await sql_store.create_user(make_user("bob"))

        assert [u.username for u in await sql_store.list_users()] == ["alice", "bob"]
        assert await sql_store.count_users() == 2


class TestApiKeys:
    async def test_lookup_by_plaintext(self, sql_store):
        user = await sql_store.create_user(make_user("alice"))
        plaintext, key_hash, key_prefix = generate_key("mcapi")
        created = await sql_store.create_api_key(
            ApiKey(user_id=user.id, key_hash=key_hash, key_prefix=key_prefix, description="ci")
        )

        found = await sql_store.get_api_key(plaintext)

        assert found.id == created.id
        assert found.description == "ci"
        assert found.masked == f"{key_prefix}..."

    async def test_unknown_plaintext(self, sql_store):
        with pytest.raises(NotFoundError):
            await sql_store.get_api_key("mcapi.unknown")

    async def test_touch_sets_last_used(self, sql_store):
        user = await sql_store.create_user(make_user("alice"))
        _, key_hash, key_prefix = generate_key("mcapi")
        api_key = await sql_store.create_api_key(
            ApiKey(user_id=user.id, key_hash=key_hash, key_prefix=key_prefix)
        )
        when = utcnow()

        await sql_store.touch_api_key(api_key.id, when)

        assert (await sql_store.get_api_key_by_id(api_key.id)).last_used == when

    async def test_touch_missing_key_is_silent(self, sql_store):
        await sql_store.touch_api_key(12345, utcnow())

    async def test_list_and_delete(self, sql_store):
        user = await sql_store.create_user(make_user("alice"))
        ids = []
        for _ in range(2):
            _, key_hash, key_prefix = generate_key("mcapi")
            key = await sql_store.create_api_key(
                ApiKey(
                    user_id=user.id,
                    key_hash=key_hash,
                    key_prefix=key_prefix,
                    expires_at=utcnow() + timedelta(days=1),
                )
            )
            ids.append(key.id)

        await sql_store.delete_api_key(ids[0])

        remaining = await sql_store.list_api_keys_by_user(user.id)
        assert [k.id for k in remaining] == [ids[1]]


class TestServerRecords:
    async def test_create_and_fetch(self, sql_store):
        owner = await sql_store.create_user(make_user("alice"))
        await sql_store.create_server_record(_server("alice-survival", owner.id))

        server = await sql_store.get_server_by_name("alice-survival")

        assert server.owner_id == owner.id
        assert server.status == ServerStatus.CREATING

    async def test_duplicate_name(self, sql_store):
        owner = await sql_store.create_user(make_user("alice"))
        await sql_store.create_server_record(_server("alice-survival", owner.id))

        with pytest.raises(AlreadyExistsError):
            await sql_store.create_server_record(_server("alice-survival", owner.id))

    async def test_status_update(self, sql_store):
        owner = await sql_store.create_user(make_user("alice"))
        await sql_store.create_server_record(_server("alice-survival", owner.id))

        server = await sql_store.update_server_status("alice-survival", ServerStatus.STOPPED)

        assert server.status == ServerStatus.STOPPED

    async def test_list_by_owner(self, sql_store):
        alice = await sql_store.create_user(make_user("alice"))
        bob = await sql_store.create_user(make_user("bob"))
        await sql_store.create_server_record(_server("alice-survival", alice.id))
        await sql_store.create_server_record(_server("bob-creative", bob.id))

        assert [s.server_name for s in await sql_store.list_servers_by_owner(bob.id)] == [
            "bob-creative"
        ]
        assert len(await sql_store.list_servers()) == 2

    async def test_delete(self, sql_store):
        owner = await sql_store.create_user(make_user("alice"))
        await sql_store.create_server_record(_server("alice-survival", owner.id))

        await sql_store.delete_server_record("alice-survival")

        with pytest.raises(NotFoundError):
            await sql_store.get_server_by_name("alice-survival")
        with pytest.raises(NotFoundError):
            await sql_store.delete_server_record("alice-survival")


class TestSeedAdmin:
    async def test_seeds_when_empty(self, db_session):
        security = SecurityConfig(admin_username="root", admin_password="hunter22")

        admin = await seed_admin(db_session, security)

        assert admin is not None
        assert admin.username == "root"
        assert admin.capabilities == Permission.ALL
        assert verify_password("hunter22", admin.password_hash)

    async def test_noop_when_users_exist(self, db_session, sql_store):
        await sql_store.create_user(make_user("alice"))

        assert await seed_admin(db_session, SecurityConfig()) is None
        assert await sql_store.count_users() == 1

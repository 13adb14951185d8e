"""Unit tests for AuthChain and its authenticators.

Uses the in-memory credential store; no database.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from minecharts.auth.api_keys import generate_key
from minecharts.auth.chain import (
    ApiKeyAuthenticator,
    ApiKeyUsageRecorder,
    AuthChain,
    BearerTokenAuthenticator,
    Credentials,
)
from minecharts.auth.permissions import Permission
from minecharts.auth.tokens import TokenService
from minecharts.errors import (
    AuthenticationError,
    AuthorizationError,
    InvalidApiKeyError,
    InvalidTokenError,
)
from minecharts.models.api_key import ApiKey
from minecharts.utils.datetime import utcnow
from tests.fakes import InMemoryCredentialStore, make_user, store_factory_for


@pytest.fixture
def tokens(security_config) -> TokenService:
    return TokenService(security_config)


@pytest.fixture
def recorder(store: InMemoryCredentialStore) -> ApiKeyUsageRecorder:
    return ApiKeyUsageRecorder(lambda: store_factory_for(store))


@pytest.fixture
def chain(store, tokens, recorder) -> AuthChain:
    return AuthChain(
        [
            BearerTokenAuthenticator(store, tokens),
            ApiKeyAuthenticator(store, recorder),
        ]
    )


async def _add_key(store, user, *, expires_at=None) -> tuple[str, ApiKey]:
    plaintext, key_hash, key_prefix = generate_key("mcapi")
    api_key = await store.create_api_key(
        ApiKey(
            user_id=user.id,
            key_hash=key_hash,
            key_prefix=key_prefix,
            expires_at=expires_at,
        )
    )
    return plaintext, api_key


class TestCredentials:
    def test_from_headers(self):
        creds = Credentials.from_headers({"Authorization": "Bearer x", "X-API-Key": "k"})
        assert creds.authorization == "Bearer x"
        assert creds.api_key == "k"

    def test_empty(self):
        creds = Credentials.from_headers({})
        assert creds.authorization is None
        assert creds.api_key is None


class TestBearerToken:
    async def test_valid_token(self, chain, store, tokens):
        user = await store.create_user(make_user("alice", Permission.CREATE_SERVER))

        principal = await chain.authenticate(
            Credentials(authorization=f"Bearer {tokens.issue(user)}")
        )

        assert principal.user_id == user.id
        assert principal.method == "jwt"
        assert principal.permissions == Permission.CREATE_SERVER

    async def test_wrong_scheme(self, chain):
        with pytest.raises(AuthenticationError):
            await chain.authenticate(Credentials(authorization="Basic abc"))

    async def test_invalid_token_does_not_fall_through(self, chain, store):
        """A bad bearer token fails even when a good API key is present."""
        user = await store.create_user(make_user("alice"))
        plaintext, _ = await _add_key(store, user)

        with pytest.raises(InvalidTokenError):
            await chain.authenticate(
                Credentials(authorization="Bearer garbage", api_key=plaintext)
            )

    async def test_deleted_user(self, chain, store, tokens):
        user = await store.create_user(make_user("alice"))
        token = tokens.issue(user)
        await store.delete_user(user.id)

        with pytest.raises(AuthenticationError, match="User not found"):
            await chain.authenticate(Credentials(authorization=f"Bearer {token}"))

    async def test_bearer_preferred_over_api_key(self, chain, store, tokens):
        alice = await store.create_user(make_user("alice"))
        bob = await store.create_user(make_user("bob"))
        plaintext, _ = await _add_key(store, bob)

        principal = await chain.authenticate(
            Credentials(authorization=f"Bearer {tokens.issue(alice)}", api_key=plaintext)
        )

        assert principal.user_id == alice.id


class TestApiKey:
    async def test_valid_key(self, chain, store, recorder):
        user = await store.create_user(make_user("alice"))
        plaintext, api_key = await _add_key(store, user)

        principal = await chain.authenticate(Credentials(api_key=plaintext))
        await recorder.drain()

        assert principal.user_id == user.id
        assert principal.method == "api_key"
        assert principal.api_key_id == api_key.id
        assert store.touched and store.touched[0][0] == api_key.id
        assert store.api_keys[api_key.id].last_used is not None

    async def test_unknown_key(self, chain):
        with pytest.raises(InvalidApiKeyError):
            await chain.authenticate(Credentials(api_key="mcapi.nope"))

    async def test_expired_key(self, chain, store):
        user = await store.create_user(make_user("alice"))
        plaintext, _ = await _add_key(store, user, expires_at=utcnow() - timedelta(seconds=1))

        with pytest.raises(InvalidApiKeyError, match="expired"):
            await chain.authenticate(Credentials(api_key=plaintext))

    async def test_future_expiry_accepted(self, chain, store):
        user = await store.create_user(make_user("alice"))
        plaintext, _ = await _add_key(store, user, expires_at=utcnow() + timedelta(days=1))

        principal = await chain.authenticate(Credentials(api_key=plaintext))
        assert principal.user_id == user.id

    async def test_touch_failure_does_not_fail_request(self, chain, store, recorder):
        user = await store.create_user(make_user("alice"))
        plaintext, _ = await _add_key(store, user)
        store.touch_error = RuntimeError("db down")

        principal = await chain.authenticate(Credentials(api_key=plaintext))
        await recorder.drain()

        assert principal.user_id == user.id
        assert store.touched == []

    async def test_without_recorder(self, store):
        user = await store.create_user(make_user("alice"))
        plaintext, _ = await _add_key(store, user)

        principal = await ApiKeyAuthenticator(store).authenticate(Credentials(api_key=plaintext))

        assert principal is not None
        assert store.touched == []


class TestChainOutcomes:
    async def test_no_credentials(self, chain):
        with pytest.raises(AuthenticationError, match="Authentication required"):
            await chain.authenticate(Credentials())

    async def test_inactive_user_forbidden(self, chain, store, tokens):
        user = await store.create_user(make_user("alice", active=False))

        with pytest.raises(AuthorizationError, match="inactive"):
            await chain.authenticate(Credentials(authorization=f"Bearer {tokens.issue(user)}"))

    async def test_inactive_user_via_api_key(self, chain, store):
        user = await store.create_user(make_user("alice", active=False))
        plaintext, _ = await _add_key(store, user)

        with pytest.raises(AuthorizationError):
            await chain.authenticate(Credentials(api_key=plaintext))

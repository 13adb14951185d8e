"""Unit tests for TokenService (JWT issue/validate)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from minecharts.auth.permissions import Permission
from minecharts.auth.tokens import TokenService
from minecharts.config import SecurityConfig
from minecharts.errors import AuthenticationError, InvalidTokenError, TokenExpiredError
from tests.fakes import make_user


@pytest.fixture
def tokens(security_config: SecurityConfig) -> TokenService:
    return TokenService(security_config)


@pytest.fixture
def alice():
    user = make_user("alice", Permission.CREATE_SERVER | Permission.VIEW_SERVER)
    user.id = 42
    return user


class TestIssueAndValidate:
    def test_roundtrip_preserves_identity(self, tokens, alice):
        claims = tokens.validate(tokens.issue(alice))

        assert claims.user_id == 42
        assert claims.username == "alice"
        assert claims.email == "alice@example.com"
        assert claims.permissions == Permission.CREATE_SERVER | Permission.VIEW_SERVER

    def test_expiry_window(self, tokens, alice):
        now = datetime.now(UTC)
        claims = tokens.validate(tokens.issue(alice, now=now))

        assert claims.expires_at - claims.issued_at == timedelta(hours=1)

    def test_subject_is_string(self, tokens, alice, security_config):
        payload = jwt.decode(
            tokens.issue(alice),
            security_config.jwt_secret,
            algorithms=[security_config.jwt_algorithm],
        )
        assert payload["sub"] == "42"


class TestValidationFailures:
    def test_expired_token(self, tokens, alice):
        issued = datetime.now(UTC) - timedelta(hours=2)
        token = tokens.issue(alice, now=issued)

        with pytest.raises(TokenExpiredError):
            tokens.validate(token)

    def test_wrong_secret(self, alice):
        other = TokenService(SecurityConfig(jwt_secret="someone-else"))
        token = other.issue(alice)

        with pytest.raises(InvalidTokenError):
            TokenService(SecurityConfig(jwt_secret="test-secret")).validate(token)

    def test_garbage(self, tokens):
        with pytest.raises(InvalidTokenError):
            tokens.validate("not-a-jwt")

    def test_expired_and_invalid_are_distinct(self):
        assert TokenExpiredError.code != InvalidTokenError.code
        assert issubclass(TokenExpiredError, AuthenticationError)
        assert issubclass(InvalidTokenError, AuthenticationError)

    def test_missing_claims(self, tokens, security_config):
        now = datetime.now(UTC)
        token = jwt.encode(
            {"exp": int((now + timedelta(minutes=5)).timestamp())},
            security_config.jwt_secret,
            algorithm=security_config.jwt_algorithm,
        )
        with pytest.raises(InvalidTokenError):
            tokens.validate(token)

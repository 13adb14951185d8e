"""JWT issuing and validation (HS256 via python-jose)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from jose import ExpiredSignatureError, JWTError, jwt

from minecharts.auth.permissions import Permission
from minecharts.config import SecurityConfig
from minecharts.errors import InvalidTokenError, TokenExpiredError
from minecharts.models.user import User

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenClaims:
    """Decoded bearer-token payload."""

    user_id: int
    username: str
    email: str
    permissions: Permission
    issued_at: datetime
    expires_at: datetime


class TokenService:
    """Issues and validates signed bearer tokens."""

    def __init__(self, security: SecurityConfig) -> None:
        self._secret = security.jwt_secret
        self._algorithm = security.jwt_algorithm
        self._expiry = timedelta(hours=security.jwt_expiry_hours)

    def issue(self, user: User, *, now: datetime | None = None) -> str:
        issued_at = now or datetime.now(UTC)
        payload = {
            "sub": str(user.id),
            "username": user.username,
            "email": user.email,
            "permissions": int(user.permissions),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._expiry).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> TokenClaims:
        """Decode and verify ``token``.

        Raises:
            TokenExpiredError: signature is fine but ``exp`` has passed
            InvalidTokenError: anything else (bad signature, garbage, missing claims)
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except JWTError as e:
            logger.debug("auth.token.invalid", reason=str(e))
            raise InvalidTokenError() from e

        try:
            return TokenClaims(
                user_id=int(payload["sub"]),
                username=payload["username"],
                email=payload.get("email", ""),
                permissions=Permission.from_value(payload.get("permissions", 0)),
                issued_at=datetime.fromtimestamp(payload["iat"], UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError("Token is missing required claims") from e

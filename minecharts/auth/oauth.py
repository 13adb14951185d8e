"""External identity providers (OAuth2 / OIDC authorization-code flow).

Only Authentik is wired up. A provider turns an authorization code into an
access token and the token into a ``OAuthUserInfo``; ``sync_oauth_user``
maps that onto a local account.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx
import structlog

from minecharts.auth.passwords import unusable_password_hash
from minecharts.auth.permissions import Permission
from minecharts.config import AuthentikConfig
from minecharts.db.store import CredentialStore
from minecharts.errors import (
    AlreadyExistsError,
    AuthenticationError,
    DownstreamError,
    MinechartsError,
    NotFoundError,
)
from minecharts.models.user import User
from minecharts.utils.datetime import utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class OAuthUserInfo:
    subject: str
    email: str
    preferred_username: str = ""

    def local_username(self) -> str:
        """Username for the local account.

        preferred_username, else the e-mail local part, else ``user_<subject>``.
        """
        if self.preferred_username:
            return self.preferred_username
        if self.email and "@" in self.email:
            return self.email.split("@", 1)[0]
        return f"user_{self.subject}"


class OAuthProvider(ABC):
    name: str = "abstract"

    @abstractmethod
    def authorization_url(self, state: str) -> str: ...

    @abstractmethod
    async def exchange(self, code: str) -> str:
        """Trade an authorization code for an access token."""
        ...

    @abstractmethod
    async def get_user_info(self, access_token: str) -> OAuthUserInfo: ...


class AuthentikProvider(OAuthProvider):
    """Authentik OIDC endpoints under ``<issuer>/oauth2/``."""

    name = "authentik"
    scopes = ("openid", "email", "profile")

    def __init__(self, config: AuthentikConfig, http: httpx.AsyncClient) -> None:
        issuer = config.issuer.rstrip("/")
        self._authorize_url = f"{issuer}/oauth2/authorize"
        self._token_url = f"{issuer}/oauth2/token"
        self._userinfo_url = f"{issuer}/oauth2/userinfo"
        self._client_id = config.client_id
        self._client_secret = config.client_secret
        self._redirect_url = config.redirect_url
        self._http = http
        self._log = logger.bind(provider=self.name)

    def authorization_url(self, state: str) -> str:
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self._client_id,
                "redirect_uri": self._redirect_url,
                "scope": " ".join(self.scopes),
                "state": state,
            }
        )
        return f"{self._authorize_url}?{query}"

    async def exchange(self, code: str) -> str:
        try:
            response = await self._http.post(
                self._token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self._redirect_url,
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            self._log.error("oauth.exchange.transport_error", error=type(e).__name__)
            raise DownstreamError("Identity provider unreachable") from e

        if response.status_code >= 400:
            # 4xx here means the code was bad or reused
            self._log.warning("oauth.exchange.rejected", status=response.status_code)
            raise AuthenticationError("Failed to exchange authorization code")

        token = response.json().get("access_token")
        if not token:
            raise AuthenticationError("Identity provider returned no access token")
        return token

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        try:
            response = await self._http.get(
                self._userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            self._log.error("oauth.userinfo.transport_error", error=type(e).__name__)
            raise DownstreamError("Identity provider unreachable") from e

        if response.status_code >= 400:
            self._log.warning("oauth.userinfo.rejected", status=response.status_code)
            raise AuthenticationError("Failed to fetch user info")

        data = response.json()
        subject = data.get("sub")
        if not subject:
            raise AuthenticationError("Identity provider returned no subject")
        return OAuthUserInfo(
            subject=str(subject),
            email=data.get("email", ""),
            preferred_username=data.get("preferred_username", ""),
        )


async def sync_oauth_user(store: CredentialStore, info: OAuthUserInfo) -> User:
    """Find or create the local account for an identity-provider user.

    Accounts are matched on the provider's subject, never on username, so
    a provider account can't sign in as a password account that happens
    to share its name. New accounts are read-only. Returning users get
    ``last_login`` bumped; if that write fails the sign-in still goes
    through.

    Raises:
        AlreadyExistsError: the derived username or e-mail belongs to
            another account
    """
    try:
        user = await store.get_user_by_oauth_subject(info.subject)
    except NotFoundError:
        return await _create_oauth_user(store, info)

    user.last_login = utcnow()
    try:
        user = await store.update_user(user)
    except MinechartsError:
        logger.warning("oauth.user.last_login_failed", user_id=user.id, exc_info=True)
    return user


async def _create_oauth_user(store: CredentialStore, info: OAuthUserInfo) -> User:
    username = info.local_username()
    try:
        user = await store.create_user(
            User(
                username=username,
                email=info.email or f"{username}@oauth.local",
                password_hash=unusable_password_hash(),
                permissions=int(Permission.READ_ONLY),
                active=True,
                oauth_subject=info.subject,
                last_login=utcnow(),
            )
        )
    except AlreadyExistsError as e:
        logger.warning("oauth.user.name_taken", username=username)
        raise AlreadyExistsError(
            "Username or email already belongs to another account",
            details={"username": username},
        ) from e
    logger.info("oauth.user.created", user_id=user.id, username=username)
    return user

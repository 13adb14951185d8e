"""Authentication endpoints: local accounts and OAuth sign-in."""

from __future__ import annotations

import hmac
import secrets

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, EmailStr, Field

from minecharts.api.dependencies import (
    OAuthProviderDep,
    PrincipalDep,
    SettingsDep,
    StoreDep,
    TokenServiceDep,
)
from minecharts.api.v1.users import UserResponse, user_to_response
from minecharts.auth.oauth import sync_oauth_user
from minecharts.auth.passwords import hash_password, verify_password
from minecharts.auth.permissions import Permission
from minecharts.errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
)
from minecharts.models.user import User
from minecharts.utils.datetime import utcnow

router = APIRouter()
_log = structlog.get_logger()

OAUTH_STATE_COOKIE = "oauth_state"
_OAUTH_STATE_MAX_AGE = 600


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: EmailStr
    password: str = Field(min_length=8)


class TokenResponse(BaseModel):
    token: str
    user_id: int
    username: str
    email: str
    permissions: int


def _token_response(user: User, token: str) -> TokenResponse:
    return TokenResponse(
        token=token,
        user_id=user.id,
        username=user.username,
        email=user.email,
        permissions=user.permissions,
    )


@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, store: StoreDep, tokens: TokenServiceDep) -> TokenResponse:
    try:
        user = await store.get_user_by_username(request.username)
    except NotFoundError:
        user = None

    # Same answer for unknown user and wrong password
    if user is None or not verify_password(request.password, user.password_hash):
        _log.info("auth.login.failed", username=request.username)
        raise AuthenticationError("Invalid username or password")
    if not user.active:
        raise AuthorizationError("User account is inactive")

    user.last_login = utcnow()
    user = await store.update_user(user)
    _log.info("auth.login.success", user_id=user.id)
    return _token_response(user, tokens.issue(user))


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    request: RegisterRequest, store: StoreDep, tokens: TokenServiceDep
) -> TokenResponse:
    # AlreadyExistsError renders as 409
    user = await store.create_user(
        User(
            username=request.username,
            email=request.email,
            password_hash=hash_password(request.password),
            permissions=int(Permission.READ_ONLY),
            active=True,
        )
    )
    _log.info("auth.register", user_id=user.id, username=user.username)
    return _token_response(user, tokens.issue(user))


@router.get("/me", response_model=UserResponse)
async def me(principal: PrincipalDep, store: StoreDep) -> UserResponse:
    return user_to_response(await store.get_user_by_id(principal.user_id))


@router.get("/oauth/{provider}")
async def oauth_login(provider: str, oauth: OAuthProviderDep) -> RedirectResponse:
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(oauth.authorization_url(state), status_code=307)
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=_OAUTH_STATE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/callback/{provider}")
async def oauth_callback(
    provider: str,
    request: Request,
    oauth: OAuthProviderDep,
    store: StoreDep,
    tokens: TokenServiceDep,
    settings: SettingsDep,
    code: str = "",
    state: str = "",
):
    expected = request.cookies.get(OAUTH_STATE_COOKIE, "")
    if not expected or not state or not hmac.compare_digest(expected, state):
        raise AuthenticationError("Invalid OAuth state")
    if not code:
        raise AuthenticationError("Missing authorization code")

    access_token = await oauth.exchange(code)
    info = await oauth.get_user_info(access_token)
    user = await sync_oauth_user(store, info)
    if not user.active:
        raise AuthorizationError("User account is inactive")

    token = tokens.issue(user)
    _log.info("auth.oauth.success", provider=provider, user_id=user.id)

    frontend = settings.oauth.frontend_url
    if frontend:
        response = RedirectResponse(f"{frontend.rstrip('/')}/#token={token}", status_code=303)
    else:
        response = JSONResponse(_token_response(user, token).model_dump())
    response.delete_cookie(OAUTH_STATE_COOKIE)
    return response


"""User administration endpoints.

Listing, updating and deleting accounts needs ADMIN. Anyone may read
their own account.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel, EmailStr, Field

from minecharts.api.dependencies import AdminDep, PrincipalDep, StoreDep
from minecharts.auth.passwords import hash_password
from minecharts.auth.permissions import Permission
from minecharts.errors import AuthorizationError
from minecharts.models.user import User

router = APIRouter()
_log = structlog.get_logger()


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    permissions: int
    permission_names: list[str]
    active: bool
    last_login: datetime | None
    created_at: datetime
    updated_at: datetime


class UpdateUserRequest(BaseModel):
    """All fields optional; only provided ones change."""

    username: str | None = Field(default=None, min_length=3, max_length=50)
    email: EmailStr | None = None
    password: str | None = Field(default=None, min_length=8)
    permissions: int | None = Field(default=None, ge=0)
    active: bool | None = None


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        permissions=user.permissions,
        permission_names=user.capabilities.names(),
        active=user.active,
        last_login=user.last_login,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


@router.get("", response_model=list[UserResponse])
async def list_users(_: AdminDep, store: StoreDep) -> list[UserResponse]:
    return [user_to_response(u) for u in await store.list_users()]


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, principal: PrincipalDep, store: StoreDep) -> UserResponse:
    if principal.user_id != user_id and not principal.is_admin:
        raise AuthorizationError("Permission denied")
    return user_to_response(await store.get_user_by_id(user_id))


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    request: UpdateUserRequest,
    principal: AdminDep,
    store: StoreDep,
) -> UserResponse:
    user = await store.get_user_by_id(user_id)

    if request.username is not None:
        user.username = request.username
    if request.email is not None:
        user.email = request.email
    if request.password is not None:
        user.password_hash = hash_password(request.password)
    if request.permissions is not None:
        user.permissions = int(Permission.from_value(request.permissions))
    if request.active is not None:
        user.active = request.active

    user = await store.update_user(user)
    _log.info("user.updated", user_id=user_id, by=principal.user_id)
    return user_to_response(user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(user_id: int, principal: AdminDep, store: StoreDep) -> Response:
    await store.delete_user(user_id)
    _log.info("user.deleted", user_id=user_id, by=principal.user_id)
    return Response(status_code=204)

"""API key endpoints.

Keys are shown in full only in the create response; listings carry the
display prefix.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Response
from pydantic import BaseModel, Field

from minecharts.api.dependencies import PrincipalDep, SettingsDep, StoreDep
from minecharts.auth.api_keys import generate_key
from minecharts.errors import AuthorizationError, ValidationError
from minecharts.models.api_key import ApiKey
from minecharts.utils.datetime import is_expired

router = APIRouter()
_log = structlog.get_logger()


class CreateApiKeyRequest(BaseModel):
    description: str = Field(default="", max_length=255)
    expires_at: datetime | None = None


class ApiKeyResponse(BaseModel):
    id: int
    key: str  # masked except in the create response
    description: str
    last_used: datetime | None
    expires_at: datetime | None
    created_at: datetime


def _naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _to_response(api_key: ApiKey, key: str | None = None) -> ApiKeyResponse:
    return ApiKeyResponse(
        id=api_key.id,
        key=key or api_key.masked,
        description=api_key.description,
        last_used=api_key.last_used,
        expires_at=api_key.expires_at,
        created_at=api_key.created_at,
    )


@router.post("", response_model=ApiKeyResponse, status_code=201)
async def create_api_key(
    request: CreateApiKeyRequest,
    principal: PrincipalDep,
    store: StoreDep,
    settings: SettingsDep,
) -> ApiKeyResponse:
    expires_at = _naive_utc(request.expires_at)
    if is_expired(expires_at):
        raise ValidationError("expires_at must be in the future")

    plaintext, key_hash, key_prefix = generate_key(settings.security.api_key_prefix)
    api_key = await store.create_api_key(
        ApiKey(
            user_id=principal.user_id,
            key_hash=key_hash,
            key_prefix=key_prefix,
            description=request.description,
            expires_at=expires_at,
        )
    )
    _log.info("api_key.created", api_key_id=api_key.id, user_id=principal.user_id, key_prefix=key_prefix)
    return _to_response(api_key, key=plaintext)


@router.get("", response_model=list[ApiKeyResponse])
async def list_api_keys(principal: PrincipalDep, store: StoreDep) -> list[ApiKeyResponse]:
    keys = await store.list_api_keys_by_user(principal.user_id)
    return [_to_response(k) for k in keys]


@router.delete("/{key_id}", status_code=204)
async def delete_api_key(key_id: int, principal: PrincipalDep, store: StoreDep) -> Response:
    api_key = await store.get_api_key_by_id(key_id)
    if api_key.user_id != principal.user_id and not principal.is_admin:
        raise AuthorizationError("Only the key owner or an admin can delete this key")

    await store.delete_api_key(key_id)
    _log.info("api_key.deleted", api_key_id=key_id, by=principal.user_id)
    return Response(status_code=204)

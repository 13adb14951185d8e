"""Minecraft server endpoints.

Per-server routes use the server-scoped permission check: owners may
operate their own servers without the global flag.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from minecharts.api.dependencies import (
    NetworkManagerDep,
    OrchestratorDep,
    PrincipalDep,
    StoreDep,
    require_permission,
    require_server_permission,
)
from minecharts.auth.chain import Principal
from minecharts.auth.permissions import Permission
from minecharts.managers.lifecycle import LifecycleResult
from minecharts.models.server import MinecraftServer

router = APIRouter()
_log = structlog.get_logger()

CreatorDep = Annotated[Principal, Depends(require_permission(Permission.CREATE_SERVER))]


class CreateServerRequest(BaseModel):
    server_name: str = Field(min_length=1, max_length=63)
    env: dict[str, str] = Field(default_factory=dict)


class ServerResponse(BaseModel):
    id: int
    server_name: str
    workload_name: str
    volume_claim_name: str
    owner_id: int
    status: str
    created_at: datetime
    updated_at: datetime


class CreateServerResponse(ServerResponse):
    volume_claim_created: bool
    workload_created: bool


class DeleteServerResponse(BaseModel):
    message: str
    server_name: str
    deleted: list[str]
    warnings: list[str]


class ExecRequest(BaseModel):
    command: str = Field(min_length=1)


class ExecResponse(BaseModel):
    command: str
    stdout: str
    stderr: str


class ExposeRequest(BaseModel):
    exposure_type: str
    domain: str | None = None
    port: int | None = None


def _server_to_response(server: MinecraftServer) -> ServerResponse:
    return ServerResponse(
        id=server.id,
        server_name=server.server_name,
        workload_name=server.workload_name,
        volume_claim_name=server.volume_claim_name,
        owner_id=server.owner_id,
        status=server.status.value,
        created_at=server.created_at,
        updated_at=server.updated_at,
    )


def _lifecycle_payload(result: LifecycleResult) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "message": f"Server {result.action}",
        "server_name": result.server_name,
    }
    if result.save is not None:
        if result.save.stdout:
            payload["save_stdout"] = result.save.stdout
        if result.save.stderr:
            payload["save_stderr"] = result.save.stderr
    return payload


@router.post("", response_model=CreateServerResponse, status_code=201)
async def create_server(
    request: CreateServerRequest,
    principal: CreatorDep,
    orchestrator: OrchestratorDep,
) -> CreateServerResponse:
    result = await orchestrator.create(principal.user_id, request.server_name, request.env)
    base = _server_to_response(result.server)
    return CreateServerResponse(
        **base.model_dump(),
        volume_claim_created=result.volume_claim_created,
        workload_created=result.workload_created,
    )


@router.get("", response_model=list[ServerResponse])
async def list_servers(principal: PrincipalDep, store: StoreDep) -> list[ServerResponse]:
    if principal.is_admin:
        servers = await store.list_servers()
    else:
        servers = await store.list_servers_by_owner(principal.user_id)
    return [_server_to_response(s) for s in servers]


@router.get("/{server_name}", response_model=ServerResponse)
async def get_server(
    server_name: str,
    _: Annotated[Principal, Depends(require_server_permission(Permission.VIEW_SERVER))],
    store: StoreDep,
) -> ServerResponse:
    return _server_to_response(await store.get_server_by_name(server_name))


@router.post("/{server_name}/stop")
async def stop_server(
    server_name: str,
    _: Annotated[Principal, Depends(require_server_permission(Permission.STOP_SERVER))],
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    return _lifecycle_payload(await orchestrator.stop(server_name))


@router.post("/{server_name}/restart")
async def restart_server(
    server_name: str,
    _: Annotated[Principal, Depends(require_server_permission(Permission.RESTART_SERVER))],
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    return _lifecycle_payload(await orchestrator.restart(server_name))


@router.post("/{server_name}/start")
async def start_server(
    server_name: str,
    _: Annotated[Principal, Depends(require_server_permission(Permission.START_SERVER))],
    orchestrator: OrchestratorDep,
) -> dict[str, Any]:
    return _lifecycle_payload(await orchestrator.start_stopped(server_name))


@router.delete("/{server_name}", response_model=DeleteServerResponse)
@router.post("/{server_name}/delete", response_model=DeleteServerResponse)
async def delete_server(
    server_name: str,
    _: Annotated[Principal, Depends(require_server_permission(Permission.DELETE_SERVER))],
    orchestrator: OrchestratorDep,
) -> DeleteServerResponse:
    result = await orchestrator.delete(server_name)
    return DeleteServerResponse(
        message="Server deleted" if not result.warnings else "Server deleted with warnings",
        server_name=server_name,
        deleted=result.deleted,
        warnings=result.warnings,
    )


@router.post("/{server_name}/exec", response_model=ExecResponse)
async def exec_command(
    server_name: str,
    request: ExecRequest,
    principal: Annotated[Principal, Depends(require_server_permission(Permission.EXEC_COMMAND))],
    orchestrator: OrchestratorDep,
) -> ExecResponse:
    _log.info("server.exec.request", server_name=server_name, user_id=principal.user_id)
    result = await orchestrator.execute(server_name, request.command)
    return ExecResponse(command=request.command, stdout=result.stdout, stderr=result.stderr)


@router.post("/{server_name}/expose")
async def expose_server(
    server_name: str,
    request: ExposeRequest,
    _: Annotated[Principal, Depends(require_server_permission(Permission.CREATE_SERVER))],
    orchestrator: OrchestratorDep,
    network: NetworkManagerDep,
) -> dict[str, Any]:
    result = await network.expose(
        orchestrator.names(server_name),
        request.exposure_type,
        port=request.port,
        domain=request.domain,
    )
    return result.to_dict()

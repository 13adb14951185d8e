"""LifecycleOrchestrator - sequences a game server's platform objects.

Transitions:
    create         Absent   -> Running   claim, then workload (claim rolled back on failure)
    stop           Running  -> Stopped   save world, then scale to 0
    restart        Running  -> Running   save world, then stamp restart annotation
    start_stopped  Stopped  -> Running   scale back to the default replica count
    delete         any      -> Deleted   best effort, collects warnings

No locks: concurrent calls for the same server rely on the platform's
create-if-absent and optimistic concurrency.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog

from minecharts.config import KubernetesConfig
from minecharts.db.store import CredentialStore
from minecharts.drivers.base import Driver, DriverError, WorkloadSpec
from minecharts.errors import (
    AlreadyExistsError,
    ConflictError,
    DownstreamError,
    MinechartsError,
    NotFoundError,
    ServerNotRunningError,
    ValidationError,
)
from minecharts.managers.naming import ServerNames
from minecharts.managers.network import NetworkExposureManager
from minecharts.models.server import MinecraftServer, ServerStatus
from minecharts.services.executor import ExecResult, RemoteExecutor
from minecharts.utils.datetime import rfc3339_now

logger = structlog.get_logger()

# Always set; callers cannot override these
BASE_ENV = {
    "EULA": "TRUE",
    "CREATE_CONSOLE_IN_PIPE": "true",
}

_ENV_NAME_MAX = 255


def _downstream(operation: str, e: DriverError) -> DownstreamError:
    return DownstreamError(
        f"Failed to {operation}",
        details={"status": e.status, "reason": e.reason},
    )


@dataclass
class CreateResult:
    server: MinecraftServer
    volume_claim_created: bool
    workload_created: bool


@dataclass
class LifecycleResult:
    server_name: str
    action: str
    save: ExecResult | None = None


@dataclass
class DeleteResult:
    server_name: str
    deleted: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class LifecycleOrchestrator:
    """Drives create/stop/restart/start/delete for one request."""

    def __init__(
        self,
        driver: Driver,
        store: CredentialStore,
        executor: RemoteExecutor,
        network: NetworkExposureManager,
        k8s_config: KubernetesConfig,
    ) -> None:
        self._driver = driver
        self._store = store
        self._executor = executor
        self._network = network
        self._cfg = k8s_config
        self._log = logger.bind(manager="lifecycle")

    def names(self, server_name: str) -> ServerNames:
        return ServerNames.derive(server_name, self._cfg)

    @staticmethod
    def build_env(overrides: dict[str, str] | None) -> dict[str, str]:
        env: dict[str, str] = {}
        for key, value in (overrides or {}).items():
            if not key or len(key) > _ENV_NAME_MAX or "=" in key:
                raise ValidationError(f"Invalid environment variable name: {key!r}")
            env[key] = str(value)
        env.update(BASE_ENV)
        return env

    # Record helpers

    async def _claim_record(
        self, names: ServerNames, owner_id: int
    ) -> tuple[MinecraftServer, bool]:
        """Return the server record, creating it if needed.

        Returns:
            (record, created_by_this_call)

        Raises:
            ConflictError: the name belongs to another user
        """
        try:
            existing = await self._store.get_server_by_name(names.server)
        except NotFoundError:
            try:
                record = await self._store.create_server_record(
                    MinecraftServer(
                        server_name=names.server,
                        workload_name=names.workload,
                        volume_claim_name=names.volume_claim,
                        owner_id=owner_id,
                        status=ServerStatus.CREATING,
                    )
                )
                return record, True
            except AlreadyExistsError:
                # Concurrent create won the insert
                existing = await self._store.get_server_by_name(names.server)

        if existing.owner_id != owner_id:
            raise ConflictError(
                f"Server name already taken: {names.server}",
                details={"server_name": names.server},
            )
        return existing, False

    async def _set_status(self, server_name: str, status: ServerStatus) -> None:
        try:
            await self._store.update_server_status(server_name, status)
        except NotFoundError:
            # Workload predates record keeping
            self._log.warning("server.status.no_record", server_name=server_name, status=status.value)

    async def _forget_record(self, server_name: str) -> None:
        try:
            await self._store.delete_server_record(server_name)
        except MinechartsError:
            self._log.error("server.create.record_rollback_failed", server_name=server_name, exc_info=True)

    # Platform helpers

    async def _require_workload(self, names: ServerNames) -> None:
        try:
            workload = await self._driver.get_workload(names.workload)
        except DriverError as e:
            raise _downstream("get workload", e) from e
        if workload is None:
            raise NotFoundError(f"Server not found: {names.server}")

    async def _find_instance(self, names: ServerNames) -> str | None:
        try:
            return await self._driver.find_instance(names.workload)
        except DriverError as e:
            raise _downstream("find server instance", e) from e

    async def _require_instance(self, names: ServerNames) -> str:
        instance = await self._find_instance(names)
        if instance is None:
            raise ServerNotRunningError(
                f"Server has no running instance: {names.server}",
                details={"server_name": names.server},
            )
        return instance

    # Transitions

    async def create(
        self,
        owner_id: int,
        server_name: str,
        env: dict[str, str] | None = None,
    ) -> CreateResult:
        """Create the volume claim and workload for ``server_name``.

        Repeating the call is safe: existing objects are left alone. If the
        workload cannot be created, a claim made by this call is removed
        again; a claim that already existed is kept.
        """
        names = self.names(server_name)
        merged_env = self.build_env(env)
        log = self._log.bind(server_name=server_name, owner_id=owner_id)
        log.info("server.create")

        record, record_created = await self._claim_record(names, owner_id)

        try:
            claim_created = await self._driver.create_volume_claim(names.volume_claim, names.labels)
        except DriverError as e:
            log.error("server.create.volume_claim_failed", status=e.status, reason=e.reason)
            if record_created:
                await self._forget_record(names.server)
            raise _downstream("create volume claim", e) from e

        try:
            workload_created = await self._driver.create_workload(
                WorkloadSpec(
                    name=names.workload,
                    volume_claim_name=names.volume_claim,
                    labels=names.labels,
                    env=merged_env,
                    replicas=self._cfg.default_replicas,
                )
            )
        except DriverError as e:
            log.error("server.create.workload_failed", status=e.status, reason=e.reason)
            if claim_created:
                await self._rollback_claim(names)
            if record_created:
                await self._forget_record(names.server)
            raise _downstream("create workload", e) from e

        if workload_created or record.status == ServerStatus.CREATING:
            record = await self._store.update_server_status(names.server, ServerStatus.RUNNING)

        log.info(
            "server.create.done",
            volume_claim_created=claim_created,
            workload_created=workload_created,
        )
        return CreateResult(
            server=record,
            volume_claim_created=claim_created,
            workload_created=workload_created,
        )

    async def _rollback_claim(self, names: ServerNames) -> None:
        try:
            await self._driver.delete_volume_claim(names.volume_claim)
            self._log.info("server.create.volume_claim_rolled_back", volume_claim=names.volume_claim)
        except DriverError as e:
            self._log.error(
                "server.create.volume_claim_rollback_failed",
                volume_claim=names.volume_claim,
                status=e.status,
                reason=e.reason,
            )

    async def stop(self, server_name: str) -> LifecycleResult:
        """Save the world, then scale to zero. The volume claim stays.

        A failed save aborts the stop and leaves the server running.
        """
        names = self.names(server_name)
        log = self._log.bind(server_name=server_name)
        await self._require_workload(names)

        save = None
        instance = await self._find_instance(names)
        if instance is not None:
            try:
                save = await self._executor.save_world(instance)
            except MinechartsError:
                log.warning("server.stop.aborted", reason="save failed")
                raise

        try:
            await self._driver.scale_workload(names.workload, 0)
        except DriverError as e:
            raise _downstream("stop workload", e) from e

        await self._set_status(server_name, ServerStatus.STOPPED)
        log.info("server.stop.done", saved=save is not None)
        return LifecycleResult(server_name=server_name, action="stopped", save=save)

    async def restart(self, server_name: str) -> LifecycleResult:
        """Save the world, then roll the pod via the restart annotation."""
        names = self.names(server_name)
        await self._require_workload(names)
        instance = await self._require_instance(names)

        save = await self._executor.save_world(instance)

        try:
            await self._driver.restart_workload(names.workload, rfc3339_now())
        except DriverError as e:
            raise _downstream("restart workload", e) from e

        await self._set_status(server_name, ServerStatus.RUNNING)
        self._log.info("server.restart.done", server_name=server_name)
        return LifecycleResult(server_name=server_name, action="restarted", save=save)

    async def start_stopped(self, server_name: str) -> LifecycleResult:
        names = self.names(server_name)
        await self._require_workload(names)

        try:
            await self._driver.scale_workload(names.workload, self._cfg.default_replicas)
        except DriverError as e:
            raise _downstream("start workload", e) from e

        await self._set_status(server_name, ServerStatus.RUNNING)
        self._log.info("server.start.done", server_name=server_name)
        return LifecycleResult(server_name=server_name, action="started")

    async def delete(self, server_name: str) -> DeleteResult:
        """Remove everything that belongs to ``server_name``.

        Never fails because something is already gone. Other per-resource
        failures become warnings on the result.
        """
        names = self.names(server_name)
        result = DeleteResult(server_name=server_name)
        log = self._log.bind(server_name=server_name)
        log.info("server.delete")

        try:
            result.deleted.extend(await self._network.remove(names))
        except DownstreamError as e:
            result.warnings.append(f"service: {e.message}")

        steps = (
            ("workload", names.workload, self._driver.delete_workload),
            ("volume claim", names.volume_claim, self._driver.delete_volume_claim),
        )
        for kind, name, delete in steps:
            try:
                if await delete(name):
                    result.deleted.append(name)
            except DriverError as e:
                result.warnings.append(f"{kind} {name}: {e}")

        try:
            await self._store.delete_server_record(server_name)
        except NotFoundError:
            pass
        except DownstreamError as e:
            result.warnings.append(f"server record: {e.message}")

        if result.warnings:
            log.warning("server.delete.partial", warnings=result.warnings)
        else:
            log.info("server.delete.done", deleted=result.deleted)
        return result

    async def execute(self, server_name: str, command: str) -> ExecResult:
        """Send an in-game console command to the running server."""
        names = self.names(server_name)
        await self._require_workload(names)
        instance = await self._require_instance(names)
        self._log.info("server.exec", server_name=server_name)
        return await self._executor.send_console_command(instance, command)

"""NetworkExposureManager - one Service per game server.

Re-exposing deletes every Service labelled for the server before
creating the new one, so a server never has two live Services.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import structlog

from minecharts.config import KubernetesConfig
from minecharts.drivers.base import Driver, DriverError, ServiceSpec
from minecharts.errors import DownstreamError, NotFoundError, ValidationError
from minecharts.managers.naming import ServerNames

logger = structlog.get_logger()

MC_ROUTER_ANNOTATION = "mc-router.itzg.me/externalServerName"


class ExposureMode(str, Enum):
    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"
    MC_ROUTER = "MCRouter"

    @property
    def service_type(self) -> str:
        # The router reaches servers over the cluster network
        if self is ExposureMode.MC_ROUTER:
            return ExposureMode.CLUSTER_IP.value
        return self.value

    @classmethod
    def parse(cls, value: str) -> "ExposureMode":
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "Invalid exposure type. Must be one of: "
                + ", ".join(mode.value for mode in cls),
                details={"exposure_type": value},
            ) from None


@dataclass
class ExposureResult:
    server_name: str
    service_name: str
    exposure_type: ExposureMode
    service_type: str
    port: int
    node_port: int | None = None
    external_address: str | None = None
    domain: str | None = None
    note: str | None = None

    def to_dict(self) -> dict:
        data = {
            "message": "Service created",
            "server_name": self.server_name,
            "service_name": self.service_name,
            "exposure_type": self.exposure_type.value,
            "service_type": self.service_type,
            "port": self.port,
        }
        for key in ("node_port", "external_address", "domain", "note"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


class NetworkExposureManager:
    def __init__(self, driver: Driver, k8s_config: KubernetesConfig) -> None:
        self._driver = driver
        self._cfg = k8s_config
        self._log = logger.bind(manager="network")

    async def remove(self, names: ServerNames) -> list[str]:
        """Delete every Service belonging to the server.

        Returns:
            Names of the services that were deleted

        Raises:
            DownstreamError: listing or deleting failed
        """
        try:
            existing = set(await self._driver.list_services(names.labels))
        except DriverError as e:
            raise DownstreamError(
                "Failed to list services",
                details={"status": e.status, "reason": e.reason},
            ) from e
        # The canonical name is always tried, in case its labels were edited
        existing.add(names.service)

        removed = []
        for name in sorted(existing):
            try:
                if await self._driver.delete_service(name):
                    removed.append(name)
            except DriverError as e:
                raise DownstreamError(
                    f"Failed to delete service {name}",
                    details={"status": e.status, "reason": e.reason},
                ) from e
        if removed:
            self._log.info("network.services.removed", server_name=names.server, services=removed)
        return removed

    async def expose(
        self,
        names: ServerNames,
        exposure_type: str,
        *,
        port: int | None = None,
        domain: str | None = None,
    ) -> ExposureResult:
        mode = ExposureMode.parse(exposure_type)
        domain = (domain or "").strip() or None
        if mode is ExposureMode.MC_ROUTER and domain is None:
            raise ValidationError("Domain is required for MCRouter exposure type")
        port = port or self._cfg.game_port
        if not 0 < port < 65536:
            raise ValidationError("Port must be between 1 and 65535", details={"port": port})

        try:
            workload = await self._driver.get_workload(names.workload)
        except DriverError as e:
            raise DownstreamError(
                "Failed to get workload",
                details={"status": e.status, "reason": e.reason},
            ) from e
        if workload is None:
            raise NotFoundError(f"Server not found: {names.server}")

        await self.remove(names)

        annotations = {}
        if mode is ExposureMode.MC_ROUTER:
            annotations[MC_ROUTER_ANNOTATION] = domain

        self._log.info(
            "network.expose",
            server_name=names.server,
            exposure_type=mode.value,
            port=port,
        )
        try:
            info = await self._driver.create_service(
                ServiceSpec(
                    name=names.service,
                    service_type=mode.service_type,
                    port=port,
                    target_port=self._cfg.game_port,
                    selector=names.selector,
                    labels=names.labels,
                    annotations=annotations,
                )
            )
        except DriverError as e:
            raise DownstreamError(
                "Failed to create service",
                details={"status": e.status, "reason": e.reason},
            ) from e

        result = ExposureResult(
            server_name=names.server,
            service_name=info.name,
            exposure_type=mode,
            service_type=info.service_type,
            port=port,
        )
        if mode is ExposureMode.NODE_PORT:
            result.node_port = info.node_port
        elif mode is ExposureMode.LOAD_BALANCER:
            if info.external_address:
                result.external_address = info.external_address
            else:
                result.external_address = "pending"
                result.note = "External address not assigned yet; check again shortly"
        elif mode is ExposureMode.MC_ROUTER:
            result.domain = domain
            result.note = f"Point {domain} at the mc-router entrypoint"
        return result

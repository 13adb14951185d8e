"""Driver base class - orchestration platform abstraction.

A driver creates, inspects and removes the three resource kinds a game
server is made of (volume claim, workload, service) and opens command
streams into running instances. It does NOT handle:
- Authentication / permissions
- Retries
- Persisting server records

Create calls are create-if-absent: an object that already exists is
reported, not raised. Delete calls on absent objects return False.
Anything else the platform rejects surfaces as ``DriverError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from enum import IntEnum


class DriverError(Exception):
    """Platform call failed.

    Carries the HTTP-ish status and a short reason only; response bodies
    and request headers are deliberately dropped.
    """

    def __init__(self, operation: str, status: int | None = None, reason: str = "") -> None:
        self.operation = operation
        self.status = status
        self.reason = reason
        detail = f"{status} {reason}".strip() if status else reason
        super().__init__(f"{operation}: {detail}" if detail else operation)

    @property
    def not_found(self) -> bool:
        return self.status == 404


class ExecChannel(IntEnum):
    """Channel ids on the exec stream."""

    STDIN = 0
    STDOUT = 1
    STDERR = 2
    ERROR = 3  # final status object (JSON)
    RESIZE = 4


ExecFrame = tuple[int, bytes]


@dataclass
class WorkloadSpec:
    """Desired game-server workload."""

    name: str
    volume_claim_name: str
    labels: dict[str, str]
    env: dict[str, str] = field(default_factory=dict)
    replicas: int = 1


@dataclass
class WorkloadInfo:
    name: str
    replicas: int
    ready_replicas: int = 0
    restarted_at: str | None = None


@dataclass
class ServiceSpec:
    name: str
    service_type: str  # ClusterIP | NodePort | LoadBalancer
    port: int
    target_port: int
    selector: dict[str, str]
    labels: dict[str, str]
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class ServiceInfo:
    name: str
    service_type: str
    node_port: int | None = None
    external_address: str | None = None  # LB ingress IP or hostname
    annotations: dict[str, str] = field(default_factory=dict)


class Driver(ABC):
    """Abstract orchestration platform interface."""

    # Volume claims

    @abstractmethod
    async def create_volume_claim(self, name: str, labels: dict[str, str]) -> bool:
        """Ensure a volume claim exists.

        Returns:
            True if this call created it, False if it already existed
        """
        ...

    @abstractmethod
    async def volume_claim_exists(self, name: str) -> bool: ...

    @abstractmethod
    async def delete_volume_claim(self, name: str) -> bool:
        """Returns False if there was nothing to delete."""
        ...

    # Workloads

    @abstractmethod
    async def create_workload(self, spec: WorkloadSpec) -> bool:
        """Create the workload.

        Returns:
            True if created, False if one with that name already existed
        """
        ...

    @abstractmethod
    async def get_workload(self, name: str) -> WorkloadInfo | None: ...

    @abstractmethod
    async def delete_workload(self, name: str) -> bool: ...

    @abstractmethod
    async def scale_workload(self, name: str, replicas: int) -> None: ...

    @abstractmethod
    async def restart_workload(self, name: str, restarted_at: str) -> None:
        """Stamp the pod template so the platform rolls the instances."""
        ...

    @abstractmethod
    async def find_instance(self, workload_name: str) -> str | None:
        """Name of a running instance (pod) of the workload, if any."""
        ...

    # Services

    @abstractmethod
    async def create_service(self, spec: ServiceSpec) -> ServiceInfo: ...

    @abstractmethod
    async def list_services(self, labels: dict[str, str]) -> list[str]:
        """Names of services carrying all of ``labels``."""
        ...

    @abstractmethod
    async def delete_service(self, name: str) -> bool: ...

    # Exec

    @abstractmethod
    def exec_stream(
        self,
        instance: str,
        container: str,
        command: list[str],
    ) -> AbstractAsyncContextManager[AsyncIterator[ExecFrame]]:
        """Open a command stream into ``container`` of ``instance``.

        Yields an async iterator of ``(channel, payload)`` frames. Leaving
        the context closes the stream, including on cancellation.
        """
        ...

    async def close(self) -> None:
        """Release client resources."""
        return None

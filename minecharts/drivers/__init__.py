"""Driver layer - orchestration platform abstraction."""

from minecharts.drivers.base import (
    Driver,
    DriverError,
    ExecChannel,
    ServiceInfo,
    ServiceSpec,
    WorkloadInfo,
    WorkloadSpec,
)
from minecharts.drivers.k8s import K8sDriver

__all__ = [
    "Driver",
    "DriverError",
    "ExecChannel",
    "K8sDriver",
    "ServiceInfo",
    "ServiceSpec",
    "WorkloadInfo",
    "WorkloadSpec",
]

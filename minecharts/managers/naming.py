"""Resource names and labels derived from a server name."""

from __future__ import annotations

import re
from dataclasses import dataclass

from minecharts.config import KubernetesConfig
from minecharts.errors import ValidationError

MANAGED_BY_LABEL = "created-by"
MANAGED_BY_VALUE = "minecharts-api"

# DNS-1123 label; also what the platform accepts for label values
_NAME_RE = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_MAX_NAME_LEN = 63


@dataclass(frozen=True)
class ServerNames:
    server: str
    workload: str
    volume_claim: str
    service: str

    @classmethod
    def derive(cls, server_name: str, cfg: KubernetesConfig) -> "ServerNames":
        """Derive and validate platform object names.

        Raises:
            ValidationError: if any derived name is not a valid DNS label
        """
        if not server_name or not _NAME_RE.match(server_name):
            raise ValidationError(
                "Server name must be lowercase letters, digits and '-', "
                "starting and ending with a letter or digit",
                details={"server_name": server_name},
            )
        names = cls(
            server=server_name,
            workload=cfg.workload_name(server_name),
            volume_claim=cfg.volume_claim_name(server_name),
            service=cfg.service_name(server_name),
        )
        longest = max(len(names.workload), len(names.volume_claim), len(names.service))
        if longest > _MAX_NAME_LEN:
            raise ValidationError(
                "Server name is too long",
                details={"server_name": server_name, "max_derived_length": _MAX_NAME_LEN},
            )
        return names

    @property
    def labels(self) -> dict[str, str]:
        return {MANAGED_BY_LABEL: MANAGED_BY_VALUE, "app": self.workload}

    @property
    def selector(self) -> dict[str, str]:
        return {"app": self.workload}

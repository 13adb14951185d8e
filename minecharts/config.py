"""Minecharts configuration management.

Configuration sources (in priority order):
1. Environment variables (MINECHARTS_ prefix, ``__`` for nesting)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # sqlite by default; postgresql+asyncpg:// works with the same models
    url: str = "sqlite+aiosqlite:///./minecharts.db"
    echo: bool = False


class KubernetesConfig(BaseModel):
    """Kubernetes driver configuration.

    Every game server owns a Deployment, a PersistentVolumeClaim and at most
    one Service. Their names are derived from the server name:

        workload      = deployment_prefix + server_name
        volume claim  = workload + pvc_suffix
        service       = workload + service_suffix
    """

    namespace: str = "minecharts"
    kubeconfig: str | None = None  # None = in-cluster config

    deployment_prefix: str = "minecraft-server-"
    pvc_suffix: str = "-pvc"
    service_suffix: str = "-svc"

    storage_size: str = "10Gi"
    # None = cluster default storage class
    storage_class: str | None = "rook-ceph-block"

    default_replicas: int = 1

    image: str = "itzg/minecraft-server"
    container_name: str = "minecraft-server"
    game_port: int = 25565
    data_path: str = "/data"

    def workload_name(self, server_name: str) -> str:
        return f"{self.deployment_prefix}{server_name}"

    def volume_claim_name(self, server_name: str) -> str:
        return f"{self.workload_name(server_name)}{self.pvc_suffix}"

    def service_name(self, server_name: str) -> str:
        return f"{self.workload_name(server_name)}{self.service_suffix}"


class ExecutorConfig(BaseModel):
    """Remote command execution configuration."""

    timeout_seconds: float = 30.0
    # Helper shipped in the itzg image that writes to the server console pipe
    console_command: str = "mc-send-to-console"
    shell: str = "/bin/sh"


class SecurityConfig(BaseModel):
    """Authentication configuration."""

    jwt_secret: str = "your-secret-key-change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24

    api_key_prefix: str = "mcapi"

    # Seeded on first boot when the user table is empty
    admin_username: str = "admin"
    admin_email: str = "admin@example.com"
    admin_password: str = "admin"


class AuthentikConfig(BaseModel):
    """Authentik OAuth provider settings."""

    enabled: bool = False
    issuer: str = ""
    client_id: str = ""
    client_secret: str = ""
    redirect_url: str = ""


class OAuthConfig(BaseModel):
    """External identity provider configuration."""

    enabled: bool = False
    authentik: AuthentikConfig = Field(default_factory=AuthentikConfig)
    # Where the browser lands after a successful callback (token in fragment).
    # Empty = return JSON instead of redirecting.
    frontend_url: str = ""
    http_timeout: float = 10.0


class Settings(BaseSettings):
    """Minecharts application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MINECHARTS_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    oauth: OAuthConfig = Field(default_factory=OAuthConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Config file values arrive as init kwargs; env must win over them.
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict[str, Any]:
    """Load configuration from YAML file.

    Looks for config file in order:
    1. MINECHARTS_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/minecharts/config.yaml
    """
    import os

    config_paths = [
        os.environ.get("MINECHARTS_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/minecharts/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings(**_load_config_file())

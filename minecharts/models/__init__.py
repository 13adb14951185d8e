"""SQLModel data models."""

from minecharts.models.api_key import ApiKey
from minecharts.models.server import MinecraftServer, ServerStatus
from minecharts.models.user import User

__all__ = [
    "ApiKey",
    "MinecraftServer",
    "ServerStatus",
    "User",
]

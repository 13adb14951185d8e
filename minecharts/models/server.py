"""Minecraft server ownership record."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from minecharts.utils.datetime import utcnow


class ServerStatus(str, Enum):
    CREATING = "creating"
    RUNNING = "running"
    STOPPED = "stopped"
    DELETED = "deleted"


class MinecraftServer(SQLModel, table=True):
    """Server record.

    ``server_name`` is the only externally addressable key. Workload and
    volume claim names are derived from it and stored for reference.
    ``owner_id`` never changes after creation.
    """

    __tablename__ = "minecraft_servers"

    id: Optional[int] = Field(default=None, primary_key=True)
    server_name: str = Field(unique=True, index=True)
    workload_name: str
    volume_claim_name: str
    owner_id: int = Field(foreign_key="users.id", index=True)
    status: ServerStatus = Field(default=ServerStatus.CREATING)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

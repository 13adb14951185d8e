"""User data model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Column
from sqlmodel import Field, SQLModel

from minecharts.auth.permissions import Permission
from minecharts.utils.datetime import utcnow


class User(SQLModel, table=True):
    """Account that owns servers and API keys.

    ``permissions`` is the raw capability bitmask; use ``capabilities`` for
    checks.
    """

    __tablename__ = "users"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(unique=True, index=True, max_length=50)
    email: str = Field(unique=True, index=True, max_length=255)
    password_hash: str
    permissions: int = Field(
        default=int(Permission.READ_ONLY),
        sa_column=Column(BigInteger, nullable=False),
    )
    active: bool = Field(default=True)
    # Set for accounts created through an identity provider
    oauth_subject: Optional[str] = Field(default=None, unique=True, index=True, max_length=255)
    last_login: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def capabilities(self) -> Permission:
        return Permission.from_value(self.permissions)

"""API Key data model.

Plaintext keys are never stored, only SHA-256 hashes. ``key_prefix`` keeps
the first few characters for display and logs.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from minecharts.utils.datetime import utcnow


class ApiKey(SQLModel, table=True):
    """API key owned by a user."""

    __tablename__ = "api_keys"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    key_hash: str = Field(unique=True, index=True)  # SHA-256 hex digest
    key_prefix: str  # e.g. "mcapi.AbC1"
    description: str = Field(default="")
    last_used: Optional[datetime] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)  # null = never
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def masked(self) -> str:
        return f"{self.key_prefix}..."

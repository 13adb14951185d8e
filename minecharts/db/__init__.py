"""Database layer."""

from minecharts.db.session import (
    close_db,
    get_async_session,
    get_session_dependency,
    init_db,
)
from minecharts.db.store import CredentialStore, SQLCredentialStore

__all__ = [
    "CredentialStore",
    "SQLCredentialStore",
    "close_db",
    "get_async_session",
    "get_session_dependency",
    "init_db",
]

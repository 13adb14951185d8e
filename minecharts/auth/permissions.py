"""Capability flags granted to users.

Stored as a single integer column. ``IntFlag`` keeps arbitrary precision,
so adding flags never overflows a machine word.
"""

from __future__ import annotations

from enum import IntFlag


class Permission(IntFlag):
    ADMIN = 1 << 0
    CREATE_SERVER = 1 << 1
    DELETE_SERVER = 1 << 2
    START_SERVER = 1 << 3
    STOP_SERVER = 1 << 4
    RESTART_SERVER = 1 << 5
    EXEC_COMMAND = 1 << 6
    VIEW_SERVER = 1 << 7

    NONE = 0
    ALL = (
        ADMIN
        | CREATE_SERVER
        | DELETE_SERVER
        | START_SERVER
        | STOP_SERVER
        | RESTART_SERVER
        | EXEC_COMMAND
        | VIEW_SERVER
    )
    READ_ONLY = VIEW_SERVER
    OPERATOR = ALL & ~ADMIN

    @classmethod
    def from_value(cls, value: int) -> "Permission":
        """Coerce a stored integer, dropping bits this build doesn't know."""
        return cls(int(value) & int(cls.ALL))

    @property
    def is_admin(self) -> bool:
        return bool(self & Permission.ADMIN)

    def is_admin_or_has(self, flag: "Permission") -> bool:
        """Admin passes every check; otherwise any overlap with ``flag`` passes."""
        return self.is_admin or bool(self & flag)

    def names(self) -> list[str]:
        """Individual flag names, lowercase, in bit order."""
        return [
            member.name.lower()
            for member in SINGLE_FLAGS
            if self & member
        ]


SINGLE_FLAGS: tuple[Permission, ...] = (
    Permission.ADMIN,
    Permission.CREATE_SERVER,
    Permission.DELETE_SERVER,
    Permission.START_SERVER,
    Permission.STOP_SERVER,
    Permission.RESTART_SERVER,
    Permission.EXEC_COMMAND,
    Permission.VIEW_SERVER,
)

# Flags an owner may exercise on their own server without holding them.
OWNER_GRANTABLE = Permission.OPERATOR


def owner_may_bypass(flag: Permission) -> bool:
    """Ownership covers a check only if ``flag`` is purely operational."""
    return flag != Permission.NONE and (flag & ~OWNER_GRANTABLE) == Permission.NONE

"""Password hashing with bcrypt."""

from __future__ import annotations

import secrets

import bcrypt


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    """Check ``password`` against a stored hash; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


def unusable_password_hash() -> str:
    """Hash of a random secret nobody knows.

    Used for accounts that only sign in through an identity provider.
    """
    return hash_password(secrets.token_urlsafe(32))

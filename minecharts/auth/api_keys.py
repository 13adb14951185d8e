"""API key material.

Format: ``<prefix>.<32 url-safe chars>``. Only the SHA-256 digest is
persisted; the first characters are kept for display.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

_RANDOM_LEN = 32
_DISPLAY_LEN = 8
_ALPHABET = string.ascii_letters + string.digits + "-_"


def generate_key(prefix: str) -> tuple[str, str, str]:
    """Generate a new API key.

    Returns:
        Tuple of (plaintext, key_hash, key_prefix)
    """
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(_RANDOM_LEN))
    plaintext = f"{prefix}.{random_part}"
    return plaintext, hash_key(plaintext), display_prefix(plaintext)


def hash_key(plaintext: str) -> str:
    return hashlib.sha256(plaintext.encode()).hexdigest()


def verify_key(plaintext: str, key_hash: str) -> bool:
    return hmac.compare_digest(hash_key(plaintext), key_hash)


def display_prefix(plaintext: str) -> str:
    return plaintext[:_DISPLAY_LEN]

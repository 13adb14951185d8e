"""Unit tests for API key material."""

from __future__ import annotations

import hashlib

from minecharts.auth.api_keys import display_prefix, generate_key, hash_key, verify_key


class TestGenerateKey:
    def test_format(self):
        plaintext, _, _ = generate_key("mcapi")

        prefix, _, random_part = plaintext.partition(".")
        assert prefix == "mcapi"
        assert len(random_part) == 32

    def test_hash_is_sha256(self):
        plaintext, key_hash, _ = generate_key("mcapi")

        assert key_hash == hashlib.sha256(plaintext.encode()).hexdigest()

    def test_display_prefix(self):
        plaintext, _, key_prefix = generate_key("mcapi")

        assert key_prefix == plaintext[:8]
        assert display_prefix(plaintext) == key_prefix

    def test_uniqueness(self):
        keys = {generate_key("mcapi")[0] for _ in range(10)}
        assert len(keys) == 10


class TestVerify:
    def test_correct(self):
        assert verify_key("mcapi.abc", hash_key("mcapi.abc")) is True

    def test_incorrect(self):
        assert verify_key("mcapi.abd", hash_key("mcapi.abc")) is False

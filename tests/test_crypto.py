"""Tests for AES-256-CBC value encryption."""

from __future__ import annotations

import pytest

from faas_lifecycle.auth.crypto import AES256Algorithm, Cryptography
from faas_lifecycle.errors import ConfigurationError, ValidationError

KEY = "c2f9f0f6e9a84a2b8f8b2d5f6a7e1c3d"
IV = "1234567890abcdef"


class TestCryptography:
    @pytest.mark.asyncio
    async def test_encrypt_then_decrypt(self) -> None:
        crypto = Cryptography(AES256Algorithm(KEY, IV))
        await crypto.initialize()
        encrypted = crypto.encrypt("session payload")
        assert encrypted != "session payload"
        assert crypto.decrypt(encrypted) == "session payload"

    def test_same_key_and_iv_are_deterministic(self) -> None:
        first = Cryptography(AES256Algorithm(KEY, IV))
        second = Cryptography(AES256Algorithm(KEY.encode(), IV.encode()))
        assert first.encrypt("x") == second.encrypt("x")

    @pytest.mark.asyncio
    async def test_short_key_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="32 byte key"):
            await Cryptography(AES256Algorithm("short", IV)).initialize()

    @pytest.mark.asyncio
    async def test_short_iv_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="16 byte iv"):
            await Cryptography(AES256Algorithm(KEY, "short")).initialize()

    def test_garbage_cannot_be_decrypted(self) -> None:
        crypto = Cryptography(AES256Algorithm(KEY, IV))
        with pytest.raises(ValidationError):
            crypto.decrypt("not base64!")

    def test_algorithm_name(self) -> None:
        assert Cryptography(AES256Algorithm(KEY, IV)).algorithm.name == "aes-256-cbc"

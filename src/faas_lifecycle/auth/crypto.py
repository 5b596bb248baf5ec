"""Symmetric encryption of sensitive values.

``Cryptography`` is algorithm-agnostic: it pads, encrypts and base64-encodes
through whatever ``Algorithm`` it was built with.  Only AES-256-CBC ships
here; other algorithms subclass ``Algorithm``.
"""

from __future__ import annotations

import abc
import base64
import binascii
import logging

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, CipherContext, algorithms, modes

from faas_lifecycle.errors import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


class Algorithm(abc.ABC):
    """A block cipher configuration able to create encrypt/decrypt contexts."""

    block_size = 128

    def __init__(self, name: str) -> None:
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def initialize(self) -> None:
        """Validate key material; the default has nothing to check."""

    @abc.abstractmethod
    def create_cipher(self) -> CipherContext: ...

    @abc.abstractmethod
    def create_decipher(self) -> CipherContext: ...


class AES256Algorithm(Algorithm):
    """AES with a 256-bit key in CBC mode."""

    KEY_LENGTH = 32
    IV_LENGTH = 16

    def __init__(self, key: str | bytes, iv: str | bytes) -> None:
        super().__init__("aes-256-cbc")
        self._key = key
        self._iv = iv

    async def initialize(self) -> None:
        if len(_as_bytes(self._key)) != self.KEY_LENGTH:
            raise ConfigurationError(f"{self.name} requires a {self.KEY_LENGTH} byte key.")
        if len(_as_bytes(self._iv)) != self.IV_LENGTH:
            raise ConfigurationError(f"{self.name} requires a {self.IV_LENGTH} byte iv.")

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(_as_bytes(self._key)), modes.CBC(_as_bytes(self._iv)))

    def create_cipher(self) -> CipherContext:
        return self._cipher().encryptor()

    def create_decipher(self) -> CipherContext:
        return self._cipher().decryptor()


class Cryptography:
    """Encrypts UTF-8 strings to base64 text and back."""

    def __init__(self, algorithm: Algorithm) -> None:
        self._algorithm = algorithm

    @property
    def algorithm(self) -> Algorithm:
        return self._algorithm

    async def initialize(self) -> None:
        await self._algorithm.initialize()
        logger.debug("Cryptography initialized with %s", self._algorithm.name)

    def encrypt(self, value: str) -> str:
        padder = padding.PKCS7(self._algorithm.block_size).padder()
        padded = padder.update(value.encode("utf-8")) + padder.finalize()
        cipher = self._algorithm.create_cipher()
        encrypted = cipher.update(padded) + cipher.finalize()
        return base64.b64encode(encrypted).decode("ascii")

    def decrypt(self, value: str) -> str:
        try:
            encrypted = base64.b64decode(value, validate=True)
            decipher = self._algorithm.create_decipher()
            padded = decipher.update(encrypted) + decipher.finalize()
            unpadder = padding.PKCS7(self._algorithm.block_size).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("Value could not be decrypted.", tag="cryptography", cause=exc) from exc

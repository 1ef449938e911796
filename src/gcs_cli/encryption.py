"""AES-256-GCM seal/open for token records.

Record format (inside the on-disk envelope):

    {"Version": "v1", "Nonce": "<base64 12 bytes>", "Ciphertext": "<base64 ct || tag>"}

Field names and casing are part of the file format. Nonces are drawn fresh
from ``os.urandom`` on every seal and AAD is empty. Structural problems
(``InvalidNonceError``, ``UnsupportedVersionError``) are rejected before any
key is fetched; authentication failures surface as ``TamperedError``.
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Any, Protocol, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import InvalidNonceError, TamperedError, UnsupportedVersionError
from .keys import KEY_VERSION, NONCE_SIZE, zero

TAG_SIZE = 16


class KeySource(Protocol):
    def get_or_create(self) -> Tuple[bytearray, str]: ...


@dataclass
class EncryptedRecord:
    """Version tag, nonce and ciphertext-with-tag produced by one seal."""

    version: str
    nonce: bytes
    ciphertext: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "Version": self.version,
            "Nonce": base64.b64encode(self.nonce).decode("ascii"),
            "Ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Any) -> EncryptedRecord:
        """Parse the JSON form.

        Raises:
            ValueError: If fields are missing, mistyped or not valid base64.
        """
        if not isinstance(data, dict):
            raise ValueError("encrypted_data must be an object")
        version = data.get("Version")
        nonce = data.get("Nonce")
        ciphertext = data.get("Ciphertext")
        if not isinstance(version, str):
            raise ValueError("missing Version")
        if not isinstance(nonce, str) or not isinstance(ciphertext, str):
            raise ValueError("missing Nonce or Ciphertext")
        try:
            return cls(
                version=version,
                nonce=base64.b64decode(nonce, validate=True),
                ciphertext=base64.b64decode(ciphertext, validate=True),
            )
        except binascii.Error as exc:
            raise ValueError(f"invalid base64: {exc}") from exc


class TokenCipher:
    """Stateless AEAD engine; asks its key source for the key on every call."""

    def __init__(self, keys: KeySource):
        self._keys = keys

    def seal(self, plaintext: bytes) -> EncryptedRecord:
        key, version = self._keys.get_or_create()
        try:
            nonce = os.urandom(NONCE_SIZE)
            ciphertext = AESGCM(key).encrypt(nonce, plaintext, None)
        finally:
            zero(key)
        return EncryptedRecord(version=version, nonce=nonce, ciphertext=ciphertext)

    def open(self, record: EncryptedRecord) -> bytes:
        if len(record.nonce) != NONCE_SIZE:
            raise InvalidNonceError(len(record.nonce), NONCE_SIZE)
        # Only the current version is accepted until rotation lands.
        if record.version != KEY_VERSION:
            raise UnsupportedVersionError(record.version, KEY_VERSION)

        key, _ = self._keys.get_or_create()
        try:
            return AESGCM(key).decrypt(record.nonce, record.ciphertext, None)
        except InvalidTag as exc:
            raise TamperedError() from exc
        finally:
            zero(key)

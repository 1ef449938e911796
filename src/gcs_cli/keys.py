"""Data-encryption key lifecycle.

The authoritative key lives in the OS secret store, base64-encoded under
``(globus-connect-server, encryption-key)``. Callers receive a transient
``bytearray`` copy per call and are expected to zero it when done; nothing
here caches key material.

Versioned entries are laid out for future rotation: ``v1`` uses the bare
``encryption-key`` user name, later versions use ``encryption-key/<version>``.
"""

import base64
import binascii
import hashlib
import secrets
from typing import Tuple

from .exceptions import CorruptKeyError, KeyRotationNotSupportedError
from .logging_config import get_logger
from .vault import SERVICE_NAME, SecretStore

logger = get_logger("keys")

KEY_USER = "encryption-key"
KEY_VERSION = "v1"
KEY_SIZE = 32
NONCE_SIZE = 12


def vault_user_for_version(version: str) -> str:
    """Return the vault user name holding the key for ``version``."""
    if version == KEY_VERSION:
        return KEY_USER
    return f"{KEY_USER}/{version}"


def derive_key_from_passphrase(passphrase: str) -> bytes:
    """Derive a 256-bit key as SHA-256 of the passphrase.

    Last-resort fallback for hosts with no vault. The passphrase must be
    supplied on every run and there is no key stretching, so this forgoes the
    protection the OS secret store normally provides.
    """
    return hashlib.sha256(passphrase.encode("utf-8")).digest()


def zero(buffer: bytearray) -> None:
    """Overwrite a key buffer in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


class KeyManager:
    """Fetch-or-create the data key held in the OS secret store."""

    def __init__(self, store: SecretStore, service: str = SERVICE_NAME, user: str = KEY_USER):
        self._store = store
        self._service = service
        self._user = user

    @property
    def version(self) -> str:
        return KEY_VERSION

    def get_or_create(self) -> Tuple[bytearray, str]:
        """Return ``(key, version)``, generating and storing a key on first use.

        Raises:
            VaultUnavailableError: If the secret store cannot be reached.
            CorruptKeyError: If the stored value is not base64 of 32 bytes.
        """
        encoded = self._store.get(self._service, self._user)
        if encoded is None:
            key = bytearray(secrets.token_bytes(KEY_SIZE))
            try:
                self._store.set(
                    self._service, self._user, base64.b64encode(bytes(key)).decode("ascii")
                )
            except BaseException:
                zero(key)
                raise
            logger.info("Generated new token encryption key")
            return key, KEY_VERSION

        try:
            key = bytearray(base64.b64decode(encoded, validate=True))
        except (binascii.Error, ValueError) as exc:
            raise CorruptKeyError(message=f"Decode encryption key: {exc}") from exc
        if len(key) != KEY_SIZE:
            size = len(key)
            zero(key)
            raise CorruptKeyError(size)
        return key, KEY_VERSION

    def clear(self) -> None:
        """Delete the key from the vault. Already absent counts as success.

        Every encrypted profile file becomes unreadable afterwards.
        """
        if self._store.delete(self._service, self._user):
            logger.info("Removed token encryption key from keyring")
        else:
            logger.debug("Token encryption key already absent")

    def exists(self) -> bool:
        return self._store.get(self._service, self._user) is not None

    def rotate(self) -> None:
        # Rotation would store the next key under vault_user_for_version("v2"),
        # then re-seal every profile file; opening keeps using the record's tag.
        raise KeyRotationNotSupportedError()


class PassphraseKeyManager:
    """Key source for hosts without a vault, derived from a passphrase."""

    def __init__(self, passphrase: str):
        if not passphrase:
            raise ValueError("Passphrase must be provided.")
        self._passphrase = passphrase

    @property
    def version(self) -> str:
        return KEY_VERSION

    def get_or_create(self) -> Tuple[bytearray, str]:
        return bytearray(derive_key_from_passphrase(self._passphrase)), KEY_VERSION

    def clear(self) -> None:
        logger.debug("Passphrase-derived key has nothing to clear")

    def exists(self) -> bool:
        return True

    def rotate(self) -> None:
        raise KeyRotationNotSupportedError()

"""🔐 OS secret store access using the system keyring.

Uniform get/set/delete over a ``(service, user)`` pair backed by the
platform credential vault:

- macOS: Keychain
- Linux: Secret Service API (gnome-keyring, kwallet)
- Windows: Credential Manager

A missing entry is an expected outcome: ``get`` returns ``None`` and
``delete`` returns ``False``. Only an unreachable vault raises
(``VaultUnavailableError``). Values are never logged.
"""

import platform
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .exceptions import VaultUnavailableError
from .logging_config import get_logger

logger = get_logger("vault")

SERVICE_NAME = "globus-connect-server"


def platform_vault_name() -> str:
    """Name the credential vault users are expected to have on this OS."""
    system = platform.system()
    if system == "Darwin":
        return "macOS Keychain"
    if system == "Windows":
        return "Windows Credential Manager"
    return "Secret Service (gnome-keyring or kwallet)"


class SecretStore(ABC):
    """Key/value store of string blobs under ``(service, user)``."""

    @abstractmethod
    def get(self, service: str, user: str) -> Optional[str]:
        """Return the stored value, or None when no entry exists."""

    @abstractmethod
    def set(self, service: str, user: str, value: str) -> None:
        """Create or replace the entry."""

    @abstractmethod
    def delete(self, service: str, user: str) -> bool:
        """Remove the entry. Returns False when there was nothing to remove."""


class KeyringSecretStore(SecretStore):
    """Secret store backed by the ``keyring`` package."""

    def get(self, service: str, user: str) -> Optional[str]:
        try:
            value = keyring.get_password(service, user)
        except KeyringError as e:
            logger.debug(f"Keyring unavailable for get: {e}")
            raise VaultUnavailableError(f"read from {platform_vault_name()}", e) from e
        if value is None:
            logger.debug(f"No keyring entry for {service}/{user}")
        return value

    def set(self, service: str, user: str, value: str) -> None:
        try:
            keyring.set_password(service, user, value)
        except KeyringError as e:
            logger.debug(f"Keyring unavailable for set: {e}")
            raise VaultUnavailableError(f"store in {platform_vault_name()}", e) from e
        logger.info(f"✓ Stored keyring entry {service}/{user}")

    def delete(self, service: str, user: str) -> bool:
        try:
            keyring.delete_password(service, user)
        except PasswordDeleteError:
            logger.debug(f"No keyring entry to delete for {service}/{user}")
            return False
        except KeyringError as e:
            raise VaultUnavailableError(f"delete from {platform_vault_name()}", e) from e
        logger.info(f"✓ Removed keyring entry {service}/{user}")
        return True


class MemorySecretStore(SecretStore):
    """In-process secret store for tests and vault-less dry runs.

    Set ``available = False`` to make every call behave like a host with no
    secret service.
    """

    def __init__(self, entries: Optional[Dict[Tuple[str, str], str]] = None):
        self.entries: Dict[Tuple[str, str], str] = dict(entries or {})
        self.available = True

    def _check(self, operation: str) -> None:
        if not self.available:
            raise VaultUnavailableError(operation, RuntimeError("no secret service"))

    def get(self, service: str, user: str) -> Optional[str]:
        self._check("read")
        return self.entries.get((service, user))

    def set(self, service: str, user: str, value: str) -> None:
        self._check("store")
        self.entries[(service, user)] = value

    def delete(self, service: str, user: str) -> bool:
        self._check("delete")
        return self.entries.pop((service, user), None) is not None

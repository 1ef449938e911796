"""Custom exceptions for the Globus Connect Server CLI.

This module defines a hierarchy of exceptions for better error classification
and handling throughout the application. Every error carries a human-readable
message and, where one exists, a remedy the CLI prints below it.
"""

from typing import Optional


class GcsCliError(Exception):
    """Base exception for all CLI errors."""

    def __init__(self, message: str, details: dict = None, remedy: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.remedy = remedy


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(GcsCliError):
    """Error in configuration settings."""
    pass


class InvalidProfileError(ConfigurationError):
    """Profile name cannot be turned into a token file path."""

    def __init__(self, profile: str, reason: str):
        msg = f"Invalid profile name {profile!r}: {reason}"
        super().__init__(msg, {"profile": profile, "reason": reason})
        self.profile = profile
        self.reason = reason


# =============================================================================
# Token Store Errors
# =============================================================================


class TokenStoreError(GcsCliError):
    """Errors raised while reading or writing profile tokens."""
    pass


class NotLoggedInError(TokenStoreError):
    """No token file exists for the profile."""

    def __init__(self, profile: str):
        super().__init__(
            f"Not logged in (no token found for profile {profile!r})",
            {"profile": profile},
            remedy=f"Run 'globus-connect-server login --profile {profile}' to authenticate.",
        )
        self.profile = profile


class CorruptTokenFileError(TokenStoreError):
    """Token file is neither a valid envelope nor a legacy token."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Token file {path} is corrupt: {reason}",
            {"path": path, "reason": reason},
            remedy="Log out and log in again to replace the damaged token file.",
        )
        self.path = path
        self.reason = reason


class ExpiredUnrefreshableError(TokenStoreError):
    """Token needs refreshing and there is no refresh token to renew it."""

    def __init__(self, profile: str, expired: bool = True):
        if expired:
            msg = "Token expired and cannot be refreshed (no refresh token)"
        else:
            msg = "Token cannot be refreshed (no refresh token)"
        super().__init__(
            msg,
            {"profile": profile},
            remedy=f"Run 'globus-connect-server login --profile {profile}' again.",
        )
        self.profile = profile
        self.expired = expired


class RefreshFailedError(TokenStoreError):
    """The auth service rejected the refresh or could not be reached."""

    def __init__(self, inner: Exception, status_code: Optional[int] = None):
        msg = f"Refresh token: {inner}"
        if status_code:
            msg += f" (status: {status_code})"
        super().__init__(
            msg,
            {"status_code": status_code},
            remedy="Check your network connection or log in again.",
        )
        self.inner = inner
        self.status_code = status_code


# =============================================================================
# Encryption Errors
# =============================================================================


class EncryptionError(GcsCliError):
    """Errors from sealing or opening encrypted records."""
    pass


class InvalidNonceError(EncryptionError):
    """Record nonce has the wrong length."""

    def __init__(self, size: int, expected: int = 12):
        super().__init__(
            f"Invalid nonce size: {size} (expected {expected})",
            {"size": size, "expected": expected},
        )
        self.size = size


class UnsupportedVersionError(EncryptionError):
    """Record was sealed under a key version this build cannot open."""

    def __init__(self, version: str, current: str = "v1"):
        super().__init__(
            f"Unsupported encryption version: {version} (current: {current})",
            {"version": version, "current": current},
        )
        self.version = version


class TamperedError(EncryptionError):
    """AEAD authentication failed."""

    def __init__(self, message: str = None):
        super().__init__(
            message or "Decrypt and verify failed (data may be corrupted or tampered with)",
            remedy="The token file or the encryption key has changed; log in again.",
        )


# =============================================================================
# Vault / Key Errors
# =============================================================================


VAULT_REMEDY = (
    "Keyring storage is required for secure token encryption.\n"
    "Please ensure your system keyring is available:\n"
    "  - macOS: Keychain (built-in)\n"
    "  - Linux: Install gnome-keyring or kwallet\n"
    "  - Windows: Credential Manager (built-in)"
)


class KeyringError(GcsCliError):
    """Errors from the OS secret store or the keys it holds."""
    pass


class VaultUnavailableError(KeyringError):
    """No usable secret service on this host."""

    def __init__(self, operation: str, cause: Exception = None):
        msg = f"Access system keyring ({operation})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg, {"operation": operation}, remedy=VAULT_REMEDY)
        self.operation = operation
        self.cause = cause


class CorruptKeyError(KeyringError):
    """Keyring returned a value that is not a 32-byte key."""

    def __init__(self, size: Optional[int] = None, message: str = None):
        msg = message or f"Invalid encryption key size: {size} (expected 32)"
        super().__init__(
            msg,
            {"size": size},
            remedy="Run 'globus-connect-server key clear' and log in again.",
        )
        self.size = size


class KeyRotationNotSupportedError(KeyringError):
    """Key rotation is reserved for a future release."""

    def __init__(self):
        super().__init__("Key rotation not yet implemented")


# =============================================================================
# Secure Input Errors
# =============================================================================


class SecureInputError(GcsCliError):
    """Errors while reading a secret from the user."""
    pass


class EmptySecretError(SecureInputError):
    """Secret was empty after trimming."""

    def __init__(self):
        super().__init__("Secret cannot be empty")


class EnvMissingError(SecureInputError):
    """Named environment variable is not set."""

    def __init__(self, name: str):
        super().__init__(f"Environment variable {name!r} not set", {"name": name})
        self.name = name


class TerminalUnavailableError(SecureInputError):
    """No controlling terminal to prompt on."""

    def __init__(self, message: str = None):
        super().__init__(
            message or "No terminal available for interactive secret prompt",
            remedy="Use --secret-stdin or --secret-env NAME instead.",
        )


class SecretValidationError(SecureInputError):
    """Secret does not satisfy length bounds."""
    pass


# =============================================================================
# Remote Service Errors
# =============================================================================


class RemoteError(GcsCliError):
    """Errors returned by remote HTTP services."""
    pass


class AuthServiceError(RemoteError):
    """Globus Auth request failed."""

    def __init__(self, operation: str, message: str, status_code: int = None):
        msg = f"{operation}: {message}"
        if status_code:
            msg += f" (status: {status_code})"
        super().__init__(msg, {"operation": operation, "status_code": status_code})
        self.operation = operation
        self.status_code = status_code


class RemoteServiceError(RemoteError):
    """GCS endpoint API returned an error."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"HTTP {status_code}: {body}", {"status_code": status_code})
        self.status_code = status_code

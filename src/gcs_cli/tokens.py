"""Per-profile token storage.

Token files live at ``<config-root>/tokens/<profile>.json`` with 0600
permissions. The file is an envelope around an AES-256-GCM record:

    {
      "format": "encrypted-v1",
      "encrypted_data": {"Version": "v1", "Nonce": "...", "Ciphertext": "..."}
    }

Files written by older releases hold the token as plaintext JSON. Loading
one returns the token and immediately re-saves it encrypted; if that fails
(no keyring on this host) a warning is logged and the plaintext file is kept
so the caller can keep working.
"""

from __future__ import annotations

import contextlib
import json
import os
import re
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import DIR_MODE, ensure_dir, token_file_path, tokens_dir
from .encryption import EncryptedRecord, TokenCipher
from .exceptions import (
    CorruptTokenFileError,
    ExpiredUnrefreshableError,
    GcsCliError,
    NotLoggedInError,
)
from .logging_config import get_logger, log_duration

if TYPE_CHECKING:
    from .auth_client import TokenResponse

logger = get_logger("tokens")

ENVELOPE_FORMAT = "encrypted-v1"
FILE_MODE = 0o600
# Refresh tokens this much before expiry so they never lapse mid-request.
REFRESH_BUFFER = timedelta(minutes=5)

_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")
_RFC3339 = re.compile(
    r"\d{4}-\d{2}-\d{2}[Tt ]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenInfo(BaseModel):
    """Stored authentication tokens for a profile."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(min_length=1, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: datetime
    scopes: List[str] = Field(default_factory=list)
    resource_server: Optional[str] = None

    @field_validator("expires_at", mode="before")
    @classmethod
    def _parse_instant(cls, value: Any) -> Any:
        """Accept only datetimes and full RFC 3339 timestamps.

        Unix times and bare dates are rejected rather than guessed at.
        """
        if isinstance(value, datetime):
            return value
        if not isinstance(value, str) or not _RFC3339.fullmatch(value):
            raise ValueError(f"expires_at must be an RFC 3339 timestamp, got {value!r}")
        # RFC 3339 producers may write nanoseconds; datetime holds microseconds.
        return _EXCESS_FRACTION.sub(r"\1", value)

    @field_validator("expires_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("scopes", mode="before")
    @classmethod
    def _coerce_scopes(cls, value: Any) -> Any:
        """Accept a single scope string as written by some older producers."""
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("refresh_token", "resource_server", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """True while the token outlives the refresh buffer."""
        return (now or _utcnow()) + REFRESH_BUFFER < self.expires_at

    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def to_json(self) -> str:
        """Canonical JSON; optional fields are omitted rather than blank."""
        return json.dumps(
            self.model_dump(mode="json", exclude_none=True),
            sort_keys=True,
            separators=(",", ":"),
        )

    def refreshed_from(self, response: TokenResponse, now: Optional[datetime] = None) -> TokenInfo:
        """Build the successor record from a refresh response.

        Scopes carry over from this record; a response without a new refresh
        token keeps the current one.
        """
        return TokenInfo(
            access_token=response.access_token,
            refresh_token=response.refresh_token or self.refresh_token,
            expires_at=(now or _utcnow()) + timedelta(seconds=response.expires_in),
            scopes=list(self.scopes),
            resource_server=response.resource_server or self.resource_server,
        )

    @classmethod
    def from_token_response(cls, response: TokenResponse, now: Optional[datetime] = None) -> TokenInfo:
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=(now or _utcnow()) + timedelta(seconds=response.expires_in),
            scopes=[response.scope] if response.scope else [],
            resource_server=response.resource_server,
        )


def is_valid(token: Optional[TokenInfo], now: Optional[datetime] = None) -> bool:
    """True iff ``token`` exists and expires more than five minutes from now."""
    return token is not None and token.is_valid(now)


def can_refresh(token: Optional[TokenInfo]) -> bool:
    return token is not None and token.can_refresh()


class RefreshClient(Protocol):
    def refresh_token(self, refresh_token: str) -> TokenResponse: ...


class TokenStore:
    """Encrypted token files, one per profile, under a config root."""

    def __init__(self, cipher: TokenCipher, root: Path):
        self._cipher = cipher
        self._root = Path(root)

    @property
    def tokens_dir(self) -> Path:
        return tokens_dir(self._root)

    def path(self, profile: str) -> Path:
        return token_file_path(profile, self._root)

    def exists(self, profile: str) -> bool:
        return self.path(profile).exists()

    def list_profiles(self) -> List[str]:
        directory = self.tokens_dir
        if not directory.is_dir():
            return []
        return sorted(
            entry.stem
            for entry in directory.glob("*.json")
            if not entry.name.startswith(".")
        )

    def save(self, profile: str, token: TokenInfo) -> None:
        """Seal ``token`` and atomically replace the profile file.

        Raises:
            VaultUnavailableError: If the encryption key cannot be obtained.
            OSError: If the file cannot be written.
        """
        path = self.path(profile)
        with log_duration(logger, f"save token for {profile!r}"):
            self._root.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
            ensure_dir(self.tokens_dir)

            record = self._cipher.seal(token.to_json().encode("utf-8"))
            envelope = {"format": ENVELOPE_FORMAT, "encrypted_data": record.to_dict()}
            data = json.dumps(envelope, indent=2).encode("utf-8")

            _atomic_write(path, data)
            self._collect_stray_temp_files(path)

    def load(self, profile: str) -> TokenInfo:
        """Read and decrypt the token for ``profile``.

        Raises:
            NotLoggedInError: No token file exists.
            CorruptTokenFileError: The file is neither an envelope nor a legacy token.
            TamperedError, InvalidNonceError, UnsupportedVersionError: The
                envelope cannot be opened.
        """
        path = self.path(profile)
        with log_duration(logger, f"load token for {profile!r}"):
            try:
                data = path.read_bytes()
            except FileNotFoundError:
                raise NotLoggedInError(profile) from None

            try:
                payload = json.loads(data)
            except ValueError as exc:
                raise CorruptTokenFileError(str(path), f"not valid JSON ({exc})") from exc

            if isinstance(payload, dict) and payload.get("format") == ENVELOPE_FORMAT:
                return self._open_envelope(path, payload)

            try:
                token = TokenInfo.model_validate(payload)
            except ValidationError as exc:
                raise CorruptTokenFileError(str(path), "unrecognized token file format") from exc

        self._migrate(profile, token)
        return token

    def delete(self, profile: str) -> bool:
        """Remove the profile file. Returns False when it did not exist."""
        try:
            self.path(profile).unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Deleted token file for profile {profile!r}")
        return True

    def refresh_if_needed(
        self,
        profile: str,
        auth_client: RefreshClient,
        now: Optional[datetime] = None,
        force: bool = False,
    ) -> bool:
        """Refresh the stored token when it is inside the expiry buffer.

        Returns True if a new token was obtained and saved.

        Raises:
            ExpiredUnrefreshableError: Token needs refreshing (expired or
                ``force``) and has no refresh token.
            RefreshFailedError: The auth service rejected the refresh.
        """
        token = self.load(profile)
        if not force and token.is_valid(now):
            return False
        if not token.can_refresh():
            raise ExpiredUnrefreshableError(profile, expired=not token.is_valid(now))

        response = auth_client.refresh_token(token.refresh_token)
        self.save(profile, token.refreshed_from(response, now))
        logger.info(f"Refreshed token for profile {profile!r}", extra={"profile": profile})
        return True

    def _open_envelope(self, path: Path, payload: dict) -> TokenInfo:
        try:
            record = EncryptedRecord.from_dict(payload.get("encrypted_data"))
        except ValueError as exc:
            raise CorruptTokenFileError(str(path), f"bad encrypted record ({exc})") from exc

        plaintext = self._cipher.open(record)
        try:
            return TokenInfo.model_validate_json(plaintext)
        except ValidationError as exc:
            raise CorruptTokenFileError(str(path), "decrypted token is malformed") from exc

    def _migrate(self, profile: str, token: TokenInfo) -> None:
        try:
            self.save(profile, token)
        except (GcsCliError, OSError) as exc:
            logger.warning(
                f"Could not encrypt plaintext token file for profile {profile!r}: {exc}. "
                "The plaintext file was left in place.",
                extra={"profile": profile},
            )
            return
        logger.info(f"Migrated plaintext token for profile {profile!r} to encrypted storage")

    def _collect_stray_temp_files(self, path: Path) -> None:
        for stray in path.parent.glob(f".{path.name}.*.tmp"):
            with contextlib.suppress(FileNotFoundError):
                stray.unlink()
                logger.debug(f"Removed stray temp file {stray.name}")


def _atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to a 0600 sibling temp file, then rename over ``path``."""
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            if os.name == "posix":
                os.fchmod(handle.fileno(), FILE_MODE)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
    if os.name == "posix":
        os.chmod(path, FILE_MODE)

"""Configuration for the Globus Connect Server CLI.

Configuration is loaded from multiple sources with the following precedence:
  1. Environment variables (GLOBUS_CLIENT_ID, GLOBUS_CLIENT_SECRET, ...)
  2. Configuration file (<config-root>/config.json)
  3. Default values

Directory layout:

    <config-root>/            # GLOBUS_CONNECT_SERVER_CONFIG_DIR or ~/.globus-connect-server
    ├── config.json           # optional CLI configuration
    └── tokens/
        └── <profile>.json    # per-profile encrypted token envelope
"""

import json
import os
import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ConfigurationError, InvalidProfileError

CONFIG_DIR_ENV = "GLOBUS_CONNECT_SERVER_CONFIG_DIR"
DEFAULT_CONFIG_DIR = ".globus-connect-server"
DEFAULT_PROFILE = "default"
DEFAULT_CLIENT_ID = "e6c75d97-532a-4c88-b031-f5a3014430e3"
DEFAULT_AUTH_URL = "https://auth.globus.org"
TOKENS_DIR = "tokens"
DIR_MODE = 0o700

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    client_id: str = DEFAULT_CLIENT_ID
    client_secret: Optional[str] = Field(default=None, repr=False)
    auth_url: str = DEFAULT_AUTH_URL
    timeout_s: float = 30.0
    config_dir: str = ""
    profile: str = DEFAULT_PROFILE


def config_dir() -> Path:
    """Return the configuration root.

    Priority:
      1. GLOBUS_CONNECT_SERVER_CONFIG_DIR environment variable
      2. $HOME/.globus-connect-server
    """
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / DEFAULT_CONFIG_DIR


def tokens_dir(root: Optional[Path] = None) -> Path:
    return (root or config_dir()) / TOKENS_DIR


def ensure_dir(path: Path) -> Path:
    """Create ``path`` (and parents) with owner-only access."""
    path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    if os.name == "posix":
        os.chmod(path, DIR_MODE)
    return path


def validate_profile_name(profile: str) -> str:
    """Reject profile names that would escape the tokens directory.

    Raises:
        InvalidProfileError: If the name is empty or unsafe as a file name.
    """
    if not profile:
        raise InvalidProfileError(profile, "name is empty")
    if "/" in profile or "\\" in profile:
        raise InvalidProfileError(profile, "name contains a path separator")
    if profile.startswith("."):
        raise InvalidProfileError(profile, "name starts with a dot")
    if _CONTROL_CHARS.search(profile):
        raise InvalidProfileError(profile, "name contains control characters")
    return profile


def token_file_path(profile: str, root: Optional[Path] = None) -> Path:
    """Return the token file path for a given profile."""
    validate_profile_name(profile)
    return tokens_dir(root) / f"{profile}.json"


def _config_file(root: Path) -> Path:
    return root / "config.json"


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def load_client_config(profile: str = DEFAULT_PROFILE) -> ClientConfig:
    """Load client configuration from config.json, environment and defaults.

    Raises:
        ConfigurationError: If config.json exists but is not a valid JSON object.
    """
    root = config_dir()
    data = {}
    path = _config_file(root)
    if path.exists():
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Failed to read {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")

    try:
        config = ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc

    config.config_dir = str(root)
    config.profile = validate_profile_name(profile)
    return _apply_env_overrides(config)


def _apply_env_overrides(config: ClientConfig) -> ClientConfig:
    client_id = os.environ.get("GLOBUS_CLIENT_ID")
    client_secret = os.environ.get("GLOBUS_CLIENT_SECRET")
    auth_url = os.environ.get("GLOBUS_AUTH_URL")
    timeout = _env_float("GLOBUS_CONNECT_SERVER_TIMEOUT")

    if client_id:
        config.client_id = client_id
    if client_secret:
        config.client_secret = client_secret
    if auth_url:
        config.auth_url = auth_url.rstrip("/")
    if timeout is not None:
        config.timeout_s = timeout
    return config

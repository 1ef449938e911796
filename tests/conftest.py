"""Pytest Configuration - Shared fixtures and configuration.

Every test gets its own config root and an in-memory secret store, so no
test touches the real keyring or ~/.globus-connect-server.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gcs_cli.encryption import TokenCipher
from gcs_cli.keys import KeyManager
from gcs_cli.logging_config import ROOT_LOGGER
from gcs_cli.tokens import TokenInfo, TokenStore
from gcs_cli.vault import MemorySecretStore


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def config_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point GLOBUS_CONNECT_SERVER_CONFIG_DIR at a temporary directory."""
    root = tmp_path / "test-config"
    monkeypatch.setenv("GLOBUS_CONNECT_SERVER_CONFIG_DIR", str(root))
    for name in (
        "GLOBUS_CLIENT_ID",
        "GLOBUS_CLIENT_SECRET",
        "GLOBUS_AUTH_URL",
        "GLOBUS_CONNECT_SERVER_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return root


@pytest.fixture
def vault() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def key_manager(vault: MemorySecretStore) -> KeyManager:
    return KeyManager(vault)


@pytest.fixture
def cipher(key_manager: KeyManager) -> TokenCipher:
    return TokenCipher(key_manager)


@pytest.fixture
def store(cipher: TokenCipher, config_root: Path) -> TokenStore:
    return TokenStore(cipher, config_root)


@pytest.fixture
def sample_token() -> TokenInfo:
    return TokenInfo(
        access_token="test-access-token",
        refresh_token="test-refresh-token",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        scopes=["scope1", "scope2"],
        resource_server="test.api.globus.org",
    )


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI callback installs on stream objects CliRunner closes."""
    yield
    logger = logging.getLogger(ROOT_LOGGER)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)

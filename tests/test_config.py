"""Tests for configuration loading and path helpers."""

import json

import pytest

from gcs_cli.config import (
    DEFAULT_AUTH_URL,
    DEFAULT_CLIENT_ID,
    config_dir,
    load_client_config,
    token_file_path,
    validate_profile_name,
)
from gcs_cli.exceptions import ConfigurationError, InvalidProfileError


class TestConfigDir:
    def test_env_override(self, config_root):
        assert config_dir() == config_root

    def test_default_under_home(self, monkeypatch, tmp_path):
        monkeypatch.delenv("GLOBUS_CONNECT_SERVER_CONFIG_DIR", raising=False)
        monkeypatch.setenv("HOME", str(tmp_path))

        assert config_dir() == tmp_path / ".globus-connect-server"

    def test_token_file_path(self, config_root):
        assert token_file_path("default") == config_root / "tokens" / "default.json"


class TestProfileNames:
    @pytest.mark.parametrize("name", ["default", "prod", "my-endpoint_2", "user@site"])
    def test_accepted(self, name):
        assert validate_profile_name(name) == name

    @pytest.mark.parametrize("name", ["", "a/b", "a\\b", "..", ".hidden", "bad\nname", "tab\there"])
    def test_rejected(self, name):
        with pytest.raises(InvalidProfileError):
            validate_profile_name(name)


class TestLoadClientConfig:
    def test_defaults(self, config_root):
        config = load_client_config()

        assert config.client_id == DEFAULT_CLIENT_ID
        assert config.client_secret is None
        assert config.auth_url == DEFAULT_AUTH_URL
        assert config.timeout_s == 30.0
        assert config.config_dir == str(config_root)
        assert config.profile == "default"

    def test_config_file(self, config_root):
        config_root.mkdir(parents=True)
        (config_root / "config.json").write_text(
            json.dumps({"client_id": "from-file", "timeout_s": 5, "unknown": True})
        )

        config = load_client_config("prod")

        assert config.client_id == "from-file"
        assert config.timeout_s == 5.0
        assert config.profile == "prod"

    def test_env_overrides_file(self, config_root, monkeypatch):
        config_root.mkdir(parents=True)
        (config_root / "config.json").write_text(json.dumps({"client_id": "from-file"}))
        monkeypatch.setenv("GLOBUS_CLIENT_ID", "from-env")
        monkeypatch.setenv("GLOBUS_CLIENT_SECRET", "shh")
        monkeypatch.setenv("GLOBUS_AUTH_URL", "https://auth.example.org/")
        monkeypatch.setenv("GLOBUS_CONNECT_SERVER_TIMEOUT", "12.5")

        config = load_client_config()

        assert config.client_id == "from-env"
        assert config.client_secret == "shh"
        assert config.auth_url == "https://auth.example.org"
        assert config.timeout_s == 12.5
        assert "shh" not in repr(config)

    def test_bad_timeout_env_is_ignored(self, config_root, monkeypatch):
        monkeypatch.setenv("GLOBUS_CONNECT_SERVER_TIMEOUT", "soon")

        assert load_client_config().timeout_s == 30.0

    def test_invalid_json(self, config_root):
        config_root.mkdir(parents=True)
        (config_root / "config.json").write_text("{broken")

        with pytest.raises(ConfigurationError):
            load_client_config()

    def test_non_object(self, config_root):
        config_root.mkdir(parents=True)
        (config_root / "config.json").write_text("[1, 2]")

        with pytest.raises(ConfigurationError, match="JSON object"):
            load_client_config()

    def test_invalid_profile(self, config_root):
        with pytest.raises(InvalidProfileError):
            load_client_config("../escape")

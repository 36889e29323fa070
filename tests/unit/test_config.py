"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from echo_server.api.config import Config, LogFormat, load_config, parse_list_value


class TestConfigDefaults:
    """Test default configuration values."""

    def test_defaults(self):
        config = Config()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.log_level == "INFO"
        assert config.log_format == LogFormat.JSON
        assert config.auth_enabled is False
        assert config.api_keys == []
        assert config.protected_prefixes == ["/api/v1"]
        assert config.shutdown_timeout == 10.0

    def test_auth_disabled_protects_nothing(self):
        """Test: with auth off the gate enforces no prefixes."""
        assert Config().effective_protected_prefixes() == []

    def test_auth_enabled_uses_api_prefix(self):
        config = Config(auth_enabled=True)
        assert config.effective_protected_prefixes() == ["/api/v1"]


class TestConfigFromEnvironment:
    """Test environment variable parsing."""

    def test_basic_values(self, monkeypatch):
        monkeypatch.setenv("PORT", "9090")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("LOG_FORMAT", "TEXT")
        monkeypatch.setenv("SHUTDOWN_TIMEOUT", "2.5")

        config = Config()

        assert config.port == 9090
        assert config.log_level == "DEBUG"
        assert config.log_format == LogFormat.TEXT
        assert config.shutdown_timeout == 2.5

    def test_api_keys_comma_separated(self, monkeypatch):
        """Test: keys are trimmed and blanks dropped."""
        monkeypatch.setenv("API_KEYS", " key1, key2 ,,  ,key3")

        assert Config().api_keys == ["key1", "key2", "key3"]

    def test_api_keys_json_array(self, monkeypatch):
        monkeypatch.setenv("API_KEYS", '["key1", " key2 "]')

        assert Config().api_keys == ["key1", "key2"]

    def test_protected_prefixes(self, monkeypatch):
        monkeypatch.setenv("PROTECTED_PREFIXES", "/api/,/admin/")

        assert Config().protected_prefixes == ["/api/", "/admin/"]

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("true", True),
            ("TRUE", True),
            ("1", True),
            ("yes", True),
            ("on", True),
            ("false", False),
            ("0", False),
            ("no", False),
            ("off", False),
            ("maybe", False),
            ("", False),
        ],
    )
    def test_auth_enabled_values(self, monkeypatch, raw, expected):
        """Test: unrecognized values fall back to disabled."""
        monkeypatch.setenv("AUTH_ENABLED", raw)

        assert Config().auth_enabled is expected

    @pytest.mark.parametrize(
        "raw,expected",
        [("debug", "DEBUG"), ("info", "INFO"), ("warn", "WARNING"), ("error", "ERROR"), ("loud", "INFO")],
    )
    def test_log_levels(self, monkeypatch, raw, expected):
        monkeypatch.setenv("LOG_LEVEL", raw)

        assert Config().log_level == expected


class TestConfigValidation:
    """Test invalid configurations are rejected."""

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_port_range(self, port):
        with pytest.raises(ValidationError):
            Config(port=port)

    def test_shutdown_timeout_positive(self):
        with pytest.raises(ValidationError):
            Config(shutdown_timeout=0)

    @pytest.mark.parametrize("prefix", ["/", "/health", "/h", "/metrics"])
    def test_health_and_metrics_never_protected(self, prefix):
        with pytest.raises(ValidationError, match="would cover"):
            Config(protected_prefixes=[prefix])


class TestLoadConfig:
    """Test command line values against the environment."""

    def test_cli_values_apply_when_env_unset(self):
        config = load_config(port=9000, log_level="warn")

        assert config.port == 9000
        assert config.log_level == "WARNING"

    def test_environment_wins_over_cli(self, monkeypatch):
        monkeypatch.setenv("PORT", "7000")

        config = load_config(port=9000, log_level="error")

        assert config.port == 7000
        assert config.log_level == "ERROR"

    def test_none_values_ignored(self):
        assert load_config(port=None, host=None).port == 8080

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="Unknown configuration field"):
            load_config(color="blue")

    def test_env_keys_preserved_with_cli_override(self, monkeypatch):
        monkeypatch.setenv("API_KEYS", "a,b")
        monkeypatch.setenv("AUTH_ENABLED", "true")

        config = load_config(port=9000)

        assert config.api_keys == ["a", "b"]
        assert config.auth_enabled is True


def test_parse_list_value():
    assert parse_list_value(None) == []
    assert parse_list_value("") == []
    assert parse_list_value("a, b") == ["a", "b"]
    assert parse_list_value("[1, 2]") == ["1", "2"]
    assert parse_list_value(["x ", " "]) == ["x"]

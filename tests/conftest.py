import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from echo_server.api.config import Config

CONFIG_ENV_VARS = (
    "HOST",
    "PORT",
    "LOG_LEVEL",
    "LOG_FORMAT",
    "AUTH_ENABLED",
    "API_KEYS",
    "PROTECTED_PREFIXES",
    "SHUTDOWN_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment from leaking into configuration."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)


@pytest.fixture
def auth_config():
    return Config(auth_enabled=True, api_keys=["valid-key", "second-key"])


@pytest.fixture
def open_config():
    return Config()

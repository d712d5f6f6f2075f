"""Shared fixtures for the test suite."""

from types import SimpleNamespace

import pytest

from dictation_studio.config.settings import API_KEY_ENV_VARS, CONFIG_DIR_ENV, ConfigStore


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep real API keys and settings out of the tests."""
    for env_vars in API_KEY_ENV_VARS.values():
        for env_var in env_vars:
            monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv(CONFIG_DIR_ENV, str(tmp_path / "settings"))


@pytest.fixture
def store(tmp_path):
    return ConfigStore(tmp_path / "settings")


@pytest.fixture
def chat_response():
    """Factory for objects shaped like an OpenAI chat completion."""
    def build(content: str, total_tokens: int = 42):
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
            usage=SimpleNamespace(total_tokens=total_tokens),
        )
    return build

"""Pytest configuration and shared fixtures for chatz-core tests."""

import pytest

import chatz_core.io.logging_setup


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep settings, logs and API keys out of the developer's real environment."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("CHATZ_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("CHATZ_LOG_FILE", raising=False)
    monkeypatch.delenv("CHATZ_LOG_LEVEL", raising=False)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    monkeypatch.delenv("DEEPSEEK_API_KEY", raising=False)
    yield
    chatz_core.io.logging_setup.reset()


@pytest.fixture
def settings_file(tmp_path):
    """Path of the settings file under the isolated XDG_CONFIG_HOME."""
    return tmp_path / "config" / "chatz-core" / "settings.json"

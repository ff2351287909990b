"""Tests for chatz_core.io.settings: JSON file I/O and typed loaders."""

import json

import pytest

import chatz_core.io.settings as settings
from chatz_core.pipeline.providers import DEFAULT_PROVIDER_ORDER


class TestFileIO:
    def test_config_path_follows_xdg(self, settings_file):
        assert settings.get_config_path() == settings_file

    def test_missing_file_is_empty(self):
        assert settings.load_settings() == {}

    def test_corrupt_file_is_empty(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("{not json", encoding="utf-8")
        assert settings.load_settings() == {}

    def test_non_object_file_is_empty(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("[1, 2]", encoding="utf-8")
        assert settings.load_settings() == {}

    def test_save_creates_directory_and_leaves_no_temp_files(self, settings_file):
        settings.save_settings({"stream": False})
        assert json.loads(settings_file.read_text(encoding="utf-8")) == {"stream": False}
        assert [p.name for p in settings_file.parent.iterdir()] == ["settings.json"]

    def test_save_setting_merges(self):
        settings.save_setting("stream", False)
        settings.save_setting("history_limit", 4)
        assert settings.load_settings() == {"stream": False, "history_limit": 4}
        assert settings.load_setting("missing", "fallback") == "fallback"


# ─── Typed loaders ───────────────────────────────────────────────────────────


class TestProviderOrder:
    def test_default(self):
        assert settings.load_provider_order() == DEFAULT_PROVIDER_ORDER

    def test_configured_order_normalized(self):
        settings.save_setting("provider_order", [" DeepSeek", "groq"])
        assert settings.load_provider_order() == ("deepseek", "groq")

    def test_unknown_keys_dropped(self):
        settings.save_setting("provider_order", ["mystery", "groq"])
        assert settings.load_provider_order() == ("groq",)

    @pytest.mark.parametrize("raw", [["mystery"], [], "groq", None])
    def test_unusable_values_fall_back(self, raw):
        settings.save_setting("provider_order", raw)
        assert settings.load_provider_order() == DEFAULT_PROVIDER_ORDER


class TestScalarSettings:
    def test_stream_default_on(self):
        assert settings.load_stream_enabled() is True

    def test_stream_off(self):
        settings.save_setting("stream", False)
        assert settings.load_stream_enabled() is False

    @pytest.mark.parametrize(
        "raw, expected",
        [(5, 5), (1, 1), (0, 10), (-3, 10), (True, 10), ("7", 10), (2.5, 10)],
    )
    def test_history_limit(self, raw, expected):
        settings.save_setting("history_limit", raw)
        assert settings.load_history_limit() == expected

    def test_assistant_name(self):
        assert settings.load_assistant_name() == "intgo"
        settings.save_setting("assistant_name", "  Tutor ")
        assert settings.load_assistant_name() == "Tutor"
        settings.save_setting("assistant_name", "   ")
        assert settings.load_assistant_name() == "intgo"

"""Settings file I/O for chatz-core.

JSON settings file at XDG_CONFIG_HOME/chatz-core/settings.json. API keys are
never stored here; providers read them from the environment.

Import as: import chatz_core.io.settings
"""

import json
import os
import tempfile
from pathlib import Path

from chatz_core.core.output_filter import DEFAULT_ASSISTANT_NAME
from chatz_core.pipeline.providers import DEFAULT_PROVIDER_ORDER, is_known_provider

DEFAULT_HISTORY_LIMIT = 10


def get_config_path() -> Path:
    """Return path to settings file.

    Uses XDG_CONFIG_HOME (default ~/.config) / chatz-core / settings.json.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "chatz-core" / "settings.json"


def load_settings() -> dict:
    """Load settings from JSON file. Returns empty dict on missing/corrupt file."""
    path = get_config_path()
    # [LAW:dataflow-not-control-flow] Always attempt read; empty dict is the "no data" value.
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(data: dict) -> None:
    """Atomic write of settings dict: temp file in the same directory, then rename."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load_setting(key: str, default=None):
    """Load a single setting by key. Returns default if absent."""
    return load_settings().get(key, default)


def save_setting(key: str, value) -> None:
    """Save a single setting by key (merge into existing settings)."""
    data = load_settings()
    data[key] = value
    save_settings(data)


def load_provider_order() -> tuple[str, ...]:
    """Configured fallback chain, unknown keys dropped; default order if none survive."""
    raw = load_setting("provider_order")
    if not isinstance(raw, list):
        return DEFAULT_PROVIDER_ORDER
    order = tuple(str(key).strip().lower() for key in raw if is_known_provider(str(key)))
    return order or DEFAULT_PROVIDER_ORDER


def load_stream_enabled() -> bool:
    return bool(load_setting("stream", True))


def load_history_limit() -> int:
    raw = load_setting("history_limit", DEFAULT_HISTORY_LIMIT)
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 1:
        return DEFAULT_HISTORY_LIMIT
    return raw


def load_assistant_name() -> str:
    raw = load_setting("assistant_name")
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return DEFAULT_ASSISTANT_NAME

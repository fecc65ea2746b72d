"""Static configuration for the exception notifier.

All user-editable settings (storage, notifier defaults, logging) live in a
single JSON file for quick edits without touching Python. Secrets are read
from the environment (optionally via a .env file).
"""

import json
import os

from dotenv import load_dotenv

from core.config import options_from_config

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

# The config path can be overridden so hosts can ship their own file.
CONFIG_PATH = os.getenv("EXCEPTION_NOTIFIER_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json; a missing file means built-in defaults."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Throttle records live under <STORAGE_ROOT>/<day>/; the directory is created lazily.
STORAGE_ROOT = _resolve_path(_CONFIG.get("storage_root", "log/exception_notification"))

# Notifier defaults: the lowest-precedence option layer.
_notifier = dict(_CONFIG.get("notifier", {}))
if not _notifier.get("api_key") and os.getenv("TRACKER_API_KEY"):
    _notifier["api_key"] = os.getenv("TRACKER_API_KEY")
DEFAULT_OPTIONS = options_from_config(_notifier)

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})

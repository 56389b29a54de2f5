"""User preferences for Chaos Organizer.

Loads settings from ~/.chaos-organizer/preferences.yaml.
Falls back to sensible defaults if the file doesn't exist or is invalid.
Creates a default file on first run so users can discover and edit it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .log import logger

APP_HOME = Path.home() / ".chaos-organizer"
PREFS_PATH = APP_HOME / "preferences.yaml"

_DEFAULT_YAML = """\
# Chaos Organizer Preferences
# Delete this file to reset to defaults.

storage:
  data_file: "~/.chaos-organizer/data.json"  # snapshot of every message/reminder/sticker
  debounce_seconds: 0.8                       # quiet period before a snapshot is written

server:
  host: "127.0.0.1"
  port: 3000

messages:
  default_author: "User"          # author used when a client doesn't send one

notifier:
  max_pending: 100                # frames queued per WebSocket client before it is dropped

logging:
  level: "INFO"                   # DEBUG, INFO, WARNING, ERROR
"""


@dataclass
class StoragePreferences:
    """Where and how often the store is written to disk."""

    data_file: Path = APP_HOME / "data.json"
    debounce_seconds: float = 0.8


@dataclass
class ServerPreferences:
    """HTTP/WebSocket listener settings."""

    host: str = "127.0.0.1"
    port: int = 3000


@dataclass
class Preferences:
    """Top-level organizer preferences."""

    storage: StoragePreferences = field(default_factory=StoragePreferences)
    server: ServerPreferences = field(default_factory=ServerPreferences)
    default_author: str = "User"
    max_pending: int = 100  # per-subscriber notifier backlog
    log_level: str = "INFO"


def load_preferences(path: Path | None = None) -> Preferences:
    """Load preferences from YAML file.

    Falls back to sensible defaults if the file doesn't exist or is invalid.
    Creates a default preferences file on first run.
    """
    path = path or PREFS_PATH
    prefs = Preferences()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text()) or {}
            if isinstance(data.get("storage"), dict):
                sdata = data["storage"]
                if sdata.get("data_file"):
                    prefs.storage.data_file = Path(str(sdata["data_file"])).expanduser()
                if "debounce_seconds" in sdata:
                    prefs.storage.debounce_seconds = max(
                        0.0, float(sdata["debounce_seconds"])
                    )
            if isinstance(data.get("server"), dict):
                srv = data["server"]
                if srv.get("host"):
                    prefs.server.host = str(srv["host"])
                if "port" in srv:
                    prefs.server.port = int(srv["port"])
            if isinstance(data.get("messages"), dict):
                mdata = data["messages"]
                if mdata.get("default_author"):
                    prefs.default_author = str(mdata["default_author"])
            if isinstance(data.get("notifier"), dict):
                ndata = data["notifier"]
                if "max_pending" in ndata:
                    prefs.max_pending = max(1, int(ndata["max_pending"]))
            if isinstance(data.get("logging"), dict):
                ldata = data["logging"]
                if ldata.get("level"):
                    prefs.log_level = str(ldata["level"]).upper()
        except (OSError, yaml.YAMLError, AttributeError, TypeError, ValueError):
            logger.warning("invalid preferences in %s, using defaults", path, exc_info=True)
            return Preferences()
    else:
        # Create default file for user to customize
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(_DEFAULT_YAML)
        except OSError:
            logger.debug("could not write default preferences to %s", path, exc_info=True)

    return prefs

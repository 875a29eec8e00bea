"""Platform-aware path resolution and option parsing."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path


def get_storage_path() -> Path:
    """Return the path to OpenCode's storage directory."""
    env = os.environ.get("OC_EXPORT_STORAGE")
    if env:
        return Path(env)

    if sys.platform == "win32":
        return Path(os.environ.get("USERPROFILE", "")) / ".local" / "share" / "opencode" / "storage"
    else:  # macOS and Linux
        return Path.home() / ".local" / "share" / "opencode" / "storage"


def get_output_path() -> Path:
    """Return the default directory exported documents are written to."""
    env = os.environ.get("OC_EXPORT_OUTPUT")
    if env:
        return Path(env)
    return Path("opencode-export")


def parse_since(value: str) -> int:
    """Convert a YYYY-MM-DD date to epoch milliseconds at 00:00 UTC.

    Raises ValueError if the date is malformed.
    """
    day = datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return int(day.timestamp() * 1000)

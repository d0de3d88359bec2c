"""Data and state directory locations (XDG)."""

import os
from pathlib import Path

APP_NAME = "typingstats"


def get_data_dir() -> Path:
    """Directory for stats.json and settings.db.

    ``TYPINGSTATS_DATA_DIR`` overrides ``$XDG_DATA_HOME/typingstats``.
    """
    override = os.environ.get("TYPINGSTATS_DATA_DIR")
    if override:
        return Path(override)
    xdg_data_home = os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))
    return Path(xdg_data_home) / APP_NAME


def get_state_dir() -> Path:
    """Directory for log files (``$XDG_STATE_HOME/typingstats``)."""
    xdg_state_home = os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state"))
    return Path(xdg_state_home) / APP_NAME

"""XDG Base Directory Specification path utilities.

This module provides XDG-compliant paths for:
- Configuration files ($XDG_CONFIG_HOME/teams-relay, default: ~/.config/teams-relay)
- State/data files ($XDG_DATA_HOME/teams-relay, default: ~/.local/share/teams-relay)

Reference: https://specifications.freedesktop.org/basedir-spec/latest/
"""

from __future__ import annotations

import os
from pathlib import Path

# XDG environment variable names
XDG_CONFIG_HOME = "XDG_CONFIG_HOME"
XDG_DATA_HOME = "XDG_DATA_HOME"

# Application name used in XDG directories
APP_NAME = "teams-relay"


def get_config_home() -> Path:
    """Get the XDG config home directory.

    Returns:
        Path from $XDG_CONFIG_HOME or ~/.config if not set
    """
    xdg_config = os.environ.get(XDG_CONFIG_HOME)
    if xdg_config:
        return Path(xdg_config).expanduser()
    return Path.home() / ".config"


def get_data_home() -> Path:
    """Get the XDG data home directory.

    Returns:
        Path from $XDG_DATA_HOME or ~/.local/share if not set
    """
    xdg_data = os.environ.get(XDG_DATA_HOME)
    if xdg_data:
        return Path(xdg_data).expanduser()
    return Path.home() / ".local" / "share"


def get_default_config_path() -> Path:
    """Get the default config file path.

    Returns:
        Path to config.yaml in the config directory
    """
    return get_config_home() / APP_NAME / "config.yaml"


def get_default_state_dir() -> Path:
    """Get the default state/data directory.

    This is the directory where state.db is stored.
    """
    return get_data_home() / APP_NAME


def get_default_db_path() -> Path:
    """Get the default database path."""
    return get_default_state_dir() / "state.db"

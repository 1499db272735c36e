"""
Filesystem path definitions for nrqlctl.

This module defines the canonical locations nrqlctl reads and writes:
the session file and the application log directory. All path logic is
centralized here so the CLI, the TUI and the tests agree on them.

Design Decisions:
    - All functions return pathlib.Path objects
    - Environment variables win over the defaults so tests and CI can
      redirect everything to a temporary directory
    - Defaults live under ~/.config/nrqlctl
"""

import os
from pathlib import Path


def repo_root() -> Path:
    """
    Resolve the repository root directory.

    This file lives at: <repo>/tools/nrqlctl/utils/paths.py
    So we go up 3 parent directories to reach the repo root.

    Returns:
        Path: Absolute path to the repository root. Used to locate an
              optional .env file during development checkouts.
    """
    return Path(__file__).resolve().parents[3]


def config_root() -> Path:
    """
    Return the per-user configuration directory.

    Returns:
        Path: ~/.config/nrqlctl (expanded).
    """
    return Path("~/.config/nrqlctl").expanduser()


def session_path() -> Path:
    """
    Return the session file path.

    Uses NRQLCTL_SESSION if set, otherwise <config_root>/session.yaml.

    Example:
        >>> os.environ["NRQLCTL_SESSION"] = "/tmp/work.yaml"
        >>> session_path()
        PosixPath('/tmp/work.yaml')
    """
    override = os.environ.get("NRQLCTL_SESSION")
    if override:
        return Path(override).expanduser()
    return config_root() / "session.yaml"


def log_root() -> Path:
    """
    Return the directory that holds nrqlctl.log.

    Uses NRQLCTL_LOG_ROOT if set, otherwise <config_root>/logs.
    """
    override = os.environ.get("NRQLCTL_LOG_ROOT")
    if override:
        return Path(override).expanduser()
    return config_root() / "logs"


def app_log_path() -> Path:
    """Return the application log file path."""
    return log_root() / "nrqlctl.log"

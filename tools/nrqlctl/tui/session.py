"""
Session file persistence.

A session is the operator's working set of queries, saved as a YAML
mapping from alias to canonical query text:

    checkout rate: FROM Transaction SELECT count(*) as value WHERE ...
    errors by host: FROM TransactionError SELECT count(*) as value ...

Purpose:
    Saving on quit and offering to reload at startup lets an operator keep
    a dashboard across runs without retyping queries.

Design Decisions:
    - PyYAML safe_load/safe_dump; no custom tags are ever written or read
    - Absent or blank files mean "no prior session", not an error
    - Read and write failures raise SessionError subclasses so the caller
      can fall back instead of aborting
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import yaml


class SessionError(RuntimeError):
    """Base class for session file failures."""


class SessionCodecError(SessionError):
    """The session file exists but is not a valid alias -> query mapping."""


class SessionIOError(SessionError):
    """The session file could not be read or written."""


class Session:
    """
    A session file and whether it has been resolved.

    Attributes:
        path: Location of the YAML file.
        is_loaded: True once the operator has answered the load prompt, or
                   from the start when there is no prior session to load.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.is_loaded = not self.exists()

    def exists(self) -> bool:
        """True when a non-blank session file is present."""
        try:
            return self.path.is_file() and bool(self.path.read_text(encoding="utf-8").strip())
        except OSError:
            return False

    def read(self) -> Dict[str, str]:
        """
        Read the alias -> query mapping.

        Raises:
            SessionIOError: The file exists but cannot be read.
            SessionCodecError: The contents are not a string mapping.
        """
        if not self.path.exists():
            return {}

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SessionIOError(f"cannot read {self.path}: {exc}") from exc

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SessionCodecError(f"cannot parse {self.path}: {exc}") from exc

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise SessionCodecError(f"{self.path} does not contain a mapping")

        return {str(alias): str(query) for alias, query in data.items() if query is not None}

    def write(self, mapping: Dict[str, str]) -> None:
        """
        Replace the session file with `mapping`.

        Raises:
            SessionIOError: The file cannot be written.
        """
        text = yaml.safe_dump(dict(mapping), sort_keys=False, allow_unicode=True, width=4096)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Truncate and rewrite the whole file
            with self.path.open("w", encoding="utf-8") as f:
                f.write(text)
        except OSError as exc:
            raise SessionIOError(f"cannot write {self.path}: {exc}") from exc

"""
nrqlctl - Live terminal dashboard for NRQL queries.

This package provides a command-line interface and TUI (Text User Interface)
for composing New Relic NRQL queries, watching their results refresh live,
aliasing them, and saving the working set as a session.

Package Structure:
    - cli.py: Main command-line interface and entry point
    - nrql.py: Query model (parse / render)
    - client.py: NerdGraph client
    - tui/: Text User Interface components
    - utils/: Shared utilities for paths and logging

Usage:
    Run as a module: python -m nrqlctl <command>

Example:
    python -m nrqlctl dashboard
"""

__version__ = "0.1.0"

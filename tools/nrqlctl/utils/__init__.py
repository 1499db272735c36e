"""
Utility modules for nrqlctl.

This subpackage contains shared utilities used across nrqlctl:

Modules:
    - paths: Filesystem path resolution for the session file and logs
    - applog: Append-only application log

Purpose:
    These utilities are separated from the CLI and the TUI to:
    - Avoid circular imports
    - Enable reuse across CLI commands and TUI components
    - Keep path and logging logic centralized and testable
"""

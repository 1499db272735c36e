"""
Entry point for running nrqlctl as a Python module.

This module enables the package to be executed directly via:
    python -m nrqlctl <command>
"""

from .cli import main

if __name__ == "__main__":
    main()

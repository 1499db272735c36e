#!/usr/bin/env python3
"""
nrqlctl - Live terminal dashboard for NRQL queries.

This module implements the command-line interface for nrqlctl, providing
the interactive dashboard plus a few non-interactive helpers that are
handy when writing queries or inspecting a saved session.

Responsibilities:
    - Run the live dashboard TUI (dashboard)
    - Validate and canonicalize a query without contacting New Relic (parse)
    - Fetch a query once and summarize the result (fetch)
    - Show the saved session (session)

Configuration:
    Credentials and paths come from the environment, optionally seeded
    from a .env file:
        NEW_RELIC_API_KEY     User API key (required for dashboard/fetch)
        NEW_RELIC_ACCOUNT_ID  Account to query (required for dashboard/fetch)
        NEW_RELIC_REGION      US (default) or EU
        NRQLCTL_SESSION       Session file (default ~/.config/nrqlctl/session.yaml)
        NRQLCTL_LOG_ROOT      Log directory (default ~/.config/nrqlctl/logs)

Usage:
    python -m nrqlctl <command> [options]

Examples:
    python -m nrqlctl dashboard
    python -m nrqlctl parse "FROM Transaction SELECT count(*) WHERE appName='web' SINCE 1 hour ago UNTIL now LIMIT 100 TIMESERIES"
    python -m nrqlctl fetch "FROM Transaction SELECT count(*) WHERE true FACET host SINCE 30 minutes ago UNTIL now LIMIT 10 TIMESERIES"
    python -m nrqlctl session --session ./team.yaml
"""

# Standard library imports
import argparse
import os
import sys
from pathlib import Path

# Local imports
from .client import NERDGRAPH_ENDPOINTS, NewRelicClient, RemoteFetchError
from .nrql import ParseError, parse, render
from .tui.acquisition import reduce_rows
from .tui.session import Session, SessionError
from .utils.applog import AppLogger
from .utils.paths import repo_root, session_path

# Exit code for missing configuration
EXIT_CONFIG = 2

# ============================================================
# Environment Configuration
# ============================================================

def load_dotenv() -> None:
    """
    Load .env files into os.environ if present.

    The working directory's .env is read first, then the repository
    root's (for development checkouts). Existing variables always win.

    Note:
        We implement our own .env loading rather than using python-dotenv
        to avoid adding an external dependency for a simple feature.
    """
    candidates = [Path.cwd() / ".env", repo_root() / ".env"]

    for env_path in candidates:
        if not env_path.is_file():
            continue

        with env_path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                # Skip empty lines and comments
                if not line or line.startswith("#"):
                    continue
                # Skip malformed lines (no = sign)
                if "=" not in line:
                    continue
                # Split on first = only (value might contain =)
                key, value = line.split("=", 1)
                value = value.strip().strip('"').strip("'")
                # setdefault ensures existing env vars take priority
                os.environ.setdefault(key.strip(), value)


def build_client(args) -> NewRelicClient:
    """
    Create the NerdGraph client from flags and environment.

    Returns:
        NewRelicClient, or None when credentials are missing (a message
        has already been printed to stderr).
    """
    api_key = os.environ.get("NEW_RELIC_API_KEY")
    account_id = args.account_id or os.environ.get("NEW_RELIC_ACCOUNT_ID")
    region = args.region or os.environ.get("NEW_RELIC_REGION", "US")

    missing = []
    if not api_key:
        missing.append("NEW_RELIC_API_KEY")
    if not account_id:
        missing.append("NEW_RELIC_ACCOUNT_ID (or --account-id)")
    if missing:
        print(f"[nrqlctl] Missing configuration: {', '.join(missing)}", file=sys.stderr)
        return None

    try:
        return NewRelicClient(api_key, int(account_id), region=region)
    except ValueError as exc:
        print(f"[nrqlctl] Invalid configuration: {exc}", file=sys.stderr)
        return None


def resolve_session(args) -> Session:
    """Session from --session, else NRQLCTL_SESSION, else the default path."""
    path = Path(args.session).expanduser() if args.session else session_path()
    return Session(path)

# ============================================================
# Commands
# ============================================================

def run_dashboard_command(args) -> int:
    """Run the curses dashboard until the operator quits."""
    import curses

    from .tui.app import App
    from .tui.views import run_dashboard

    client = build_client(args)
    if client is None:
        return EXIT_CONFIG

    logger = AppLogger()
    session = resolve_session(args)
    logger.info("cli", f"Dashboard starting (session={session.path}, prior={not session.is_loaded})")

    app = App(client, session, logger=logger)
    try:
        curses.wrapper(run_dashboard, app)
    except KeyboardInterrupt:
        # let Ctrl+C exit cleanly; run_dashboard already stopped the workers
        logger.warn("cli", "Interrupted")
    finally:
        client.close()

    logger.info("cli", "Dashboard stopped")
    return 0


def parse_command(args) -> int:
    """Print the canonical form of a query, or the clause it is missing."""
    try:
        query = parse(args.query)
    except ParseError as exc:
        print(f"[nrqlctl] {exc}", file=sys.stderr)
        return 1

    print(render(query))
    return 0


def fetch_command(args) -> int:
    """
    Fetch a query once and print a per-facet summary.

    Output Format:
        <facet>  <points> points
        bounds: time <min>..<max>  value <min>..<max>
    """
    try:
        query = parse(args.query)
    except ParseError as exc:
        print(f"[nrqlctl] {exc}", file=sys.stderr)
        return 1

    client = build_client(args)
    if client is None:
        return EXIT_CONFIG

    text = render(query)
    try:
        rows = client.query(text)
    except RemoteFetchError as exc:
        print(f"[nrqlctl] Fetch failed: {exc}", file=sys.stderr)
        return 1
    finally:
        client.close()

    series, bounds, facets, logs = reduce_rows(rows)

    print(f"[nrqlctl] {text}")
    for facet in facets:
        print(f"  {facet or '(default)':<30} {len(series[facet])} points")
    if not bounds.is_empty:
        print(f"  bounds: time {bounds.mins[0]:g}..{bounds.maxes[0]:g}"
              f"  value {bounds.mins[1]:g}..{bounds.maxes[1]:g}")
    for key in sorted(logs):
        for line in logs[key]:
            print(f"  {key} {line}")
    if not facets and not logs:
        print("  (no rows)")
    return 0


def session_command(args) -> int:
    """Print the saved alias -> query mapping."""
    session = resolve_session(args)
    try:
        mapping = session.read()
    except SessionError as exc:
        print(f"[nrqlctl] {exc}", file=sys.stderr)
        return 1

    print(f"[nrqlctl] Session: {session.path}")
    if not mapping:
        print("  (empty)")
    for alias, query in mapping.items():
        print(f"  {alias}: {query}")
    return 0

# ============================================================
# Command-Line Argument Parsing
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    """
    Build and configure the top-level argument parser.

    Returns:
        argparse.ArgumentParser: Configured parser ready to parse sys.argv.
    """
    parser = argparse.ArgumentParser(
        prog="nrqlctl",
        description="Live terminal dashboard for NRQL queries",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        required=True,
    )

    # Connection flags shared by commands that talk to New Relic
    connection = argparse.ArgumentParser(add_help=False)
    connection.add_argument("--account-id",
                            help="New Relic account ID (default: $NEW_RELIC_ACCOUNT_ID)")
    connection.add_argument("--region", choices=sorted(NERDGRAPH_ENDPOINTS),
                            help="NerdGraph region (default: $NEW_RELIC_REGION or US)")

    session_flag = argparse.ArgumentParser(add_help=False)
    session_flag.add_argument("--session",
                              help="Session file (default: $NRQLCTL_SESSION or ~/.config/nrqlctl/session.yaml)")

    # --- dashboard: Live TUI ---
    subparsers.add_parser(
        "dashboard",
        parents=[connection, session_flag],
        help="Run the live query dashboard (TUI)",
    )

    # --- parse: Offline query check ---
    parse_parser = subparsers.add_parser(
        "parse",
        help="Validate a query and print its canonical form",
    )
    parse_parser.add_argument("query", help="NRQL query text")

    # --- fetch: One-shot query ---
    fetch_parser = subparsers.add_parser(
        "fetch",
        parents=[connection],
        help="Run a query once and summarize the result",
    )
    fetch_parser.add_argument("query", help="NRQL query text")

    # --- session: Show saved session ---
    subparsers.add_parser(
        "session",
        parents=[session_flag],
        help="Show the saved session",
    )

    return parser

# ============================================================
# Entry Point
# ============================================================

COMMANDS = {
    "dashboard": run_dashboard_command,
    "parse": parse_command,
    "fetch": fetch_command,
    "session": session_command,
}


def main(argv=None) -> None:
    """
    Main entry point for the nrqlctl CLI.

    This function:
    1. Loads environment configuration from .env
    2. Parses command-line arguments
    3. Dispatches to the command handler and exits with its code

    Exit Codes:
        0: Success
        1: Query or session error
        2: Missing configuration
    """
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()

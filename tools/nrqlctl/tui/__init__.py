"""
TUI (Text User Interface) components for nrqlctl.

This subpackage provides the curses-based live query dashboard.

Modules:
    - app: State machine (focus, key routing, dataset/session mutation)
    - views: Main curses rendering loop and UI layout
    - acquisition: Background query refresh workers
    - datasets: Query result store and facet colours
    - logbuffer: Log lines for the Logs tab and their filters
    - session: Session file persistence
    - inputs: Text buffers for input panels
    - model: Shared data structures

Architecture:
    The TUI uses a producer-consumer pattern:
    1. One QueryWorker per query fetches in a background thread
    2. Workers push Payloads onto a shared queue
    3. The main curses loop drains the queue every frame and renders

Usage:
    The TUI is typically launched via the CLI:
        python -m nrqlctl dashboard
"""

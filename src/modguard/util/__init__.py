"""
Utility functions and helpers for ModGuard.

- **logger.py**: Centralized logging configuration with colored console output
  and per-session log files. Uses prompt_toolkit for non-blocking console I/O.

- **sanitize.py**: Token redaction and length limits for user-facing text.

- **time_utils.py**: Millisecond clocks and ``10m``-style duration parsing.
"""

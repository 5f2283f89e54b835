"""Process-wide logging setup for the language server.

The protocol owns stdout when the server runs over stdio, so log records go
to stderr or to the file named by ``--log-file``.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def parse_log_level(name: str) -> int:
    try:
        return LOG_LEVELS[name.strip().lower()]
    except KeyError:
        choices = ", ".join(LOG_LEVELS)
        raise ValueError(f"invalid log level {name!r} (expected one of: {choices})") from None


def configure_logging(level: str = "info", log_file: Path | None = None) -> logging.Handler:
    """Route all records through a single handler on the root logger."""
    numeric_level = parse_log_level(level)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
        if getattr(existing, "_ci_operator_lsp", False):
            existing.close()
    handler._ci_operator_lsp = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(numeric_level)
    return handler

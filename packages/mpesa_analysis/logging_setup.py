"""Logging for ``mpesa_analysis``.

Modules log through ``get_logger("mpesa_analysis.<module>")`` with
``event key=value`` messages and never attach handlers themselves. Output is
switched on by the host (the CLI) calling :func:`configure_logging`, which
installs one stream handler on the ``mpesa_analysis`` logger. Until then the
package logger only carries a ``NullHandler``.

The level comes from the ``level`` argument, else ``MPESA_ANALYSIS_LOG_LEVEL``,
else INFO.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

ROOT_LOGGER = "mpesa_analysis"
LEVEL_ENV_VAR = "MPESA_ANALYSIS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s %(message)s"

_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Turn ``level`` (or the env var when ``None``) into a numeric level.

    Unknown names and empty values resolve to ``logging.INFO``.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR)
    if isinstance(level, int):
        return level
    name = (level or "").strip().upper()
    if name.isdigit():
        return int(name)
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def configure_logging(
    level: int | str | None = None, *, stream: IO[str] = sys.stderr
) -> logging.Handler:
    """Send package logs to ``stream``; return the installed handler.

    Only the first call installs a handler. Later calls return it unchanged.
    """

    global _handler
    if _handler is not None:
        return _handler

    root = logging.getLogger(ROOT_LOGGER)
    for placeholder in [h for h in root.handlers if isinstance(h, logging.NullHandler)]:
        root.removeHandler(placeholder)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(resolve_level(level))
    root.propagate = False
    _handler = handler
    return handler


def reset_logging() -> None:
    """Remove the installed handler so the next :func:`configure_logging` starts fresh."""

    global _handler
    root = logging.getLogger(ROOT_LOGGER)
    if _handler is not None:
        root.removeHandler(_handler)
        _handler = None
    root.setLevel(logging.NOTSET)
    root.propagate = True


def get_logger(name: str) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if _handler is None and not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "LEVEL_ENV_VAR",
    "LOG_FORMAT",
    "ROOT_LOGGER",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "resolve_level",
]

"""
Logging configuration — central setup for the CLI entrypoint.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Two destinations:
    - console (stderr): level-tagged, coloured lines for the operator
    - execution log file: timestamped lines, truncated at the start of
      every run so a log always describes exactly one run

Console level precedence:
    CLI flag  >  LINUX_INIT_LOG_LEVEL env var  >  WARNING (default)
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

# ── Format strings ──────────────────────────────────────────────

_FMT_CONSOLE = "%(tag)s %(message)s"
_FMT_CONSOLE_DEBUG = "%(tag)s %(name)s:%(lineno)d — %(message)s"

# File output — always full detail
_FMT_FILE = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

_TAG_COLORS = {
    logging.DEBUG: "white",
    logging.INFO: "blue",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "red",
}

# Third-party loggers that are noisy at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


class _TaggedFormatter(logging.Formatter):
    """Prefix each console line with a coloured ``[LEVEL]`` tag."""

    def __init__(self, fmt: str, color: bool) -> None:
        super().__init__(fmt)
        self._color = color

    def format(self, record: logging.LogRecord) -> str:
        tag = f"[{record.levelname}]"
        if self._color:
            tag = click.style(tag, fg=_TAG_COLORS.get(record.levelno, "white"), bold=True)
        record.tag = tag
        return super().format(record)


def setup_logging(
    level: str = "WARNING",
    log_file: str | Path | None = None,
    quiet_third_party: bool = True,
) -> str | None:
    """Configure Python logging for the entire process.

    Args:
        level: Console log level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional execution log path. The file always records
            INFO and above (DEBUG when ``level`` is DEBUG).
        quiet_third_party: Keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.

    Returns:
        The log file path actually in use, or None when file logging
        could not be set up.
    """
    numeric_level = _parse_level(level)

    # ── Console handler (stderr) ────────────────────────────────
    fmt = _FMT_CONSOLE_DEBUG if numeric_level <= logging.DEBUG else _FMT_CONSOLE
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(_TaggedFormatter(fmt, color=sys.stderr.isatty()))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)

    effective_level = numeric_level
    actual_path: str | None = None

    # ── File handler (optional) ─────────────────────────────────
    if log_file:
        file_level = min(numeric_level, logging.INFO)
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            fh = logging.FileHandler(log_file, mode="w", encoding="utf-8")
        except OSError as e:
            root.warning("Cannot open execution log %s: %s", log_file, e)
        else:
            fh.setLevel(file_level)
            fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
            root.addHandler(fh)
            effective_level = min(effective_level, file_level)
            actual_path = str(log_file)

    root.setLevel(effective_level)

    # ── Third-party noise control ───────────────────────────────
    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False
    return actual_path


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.INFO
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.INFO
    return numeric

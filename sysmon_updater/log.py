"""Logging setup: rich console output plus an optional log file."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_NAME = "sysmon-updater.log"
FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(
    level: str = "INFO",
    log_dir: str | Path | None = None,
    console: Console | None = None,
) -> Path | None:
    """Route the package's loggers to the console and, if asked, a file.

    The log file is auxiliary: if it cannot be opened, a warning is logged to
    the console and the run carries on. Returns the log file path in use.
    """
    root = logging.getLogger("sysmon_updater")
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    root.addHandler(
        RichHandler(console=console, show_path=False, rich_tracebacks=True)
    )

    if not log_dir:
        return None

    log_path = Path(log_dir) / LOG_FILE_NAME
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError as e:
        root.warning("Could not open log file %s: %s", log_path, e)
        return None

    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root.addHandler(file_handler)
    return log_path

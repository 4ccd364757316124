"""Console and per-run log file setup for the command-line tool."""

from __future__ import annotations

import contextlib
import logging
import sys
from datetime import datetime
from pathlib import Path

LOG_FILE_PREFIX = "SharePointUploader_"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Level names accepted in addition to Python's own.
_LEVEL_ALIASES = {
    "verbose": logging.DEBUG,
    "information": logging.INFO,
    "fatal": logging.CRITICAL,
}


def parse_level(level: str) -> int:
    """Map a level name such as ``INFO`` or ``Information`` to a logging level.

    Unknown names fall back to INFO.
    """
    name = level.strip().lower()
    if name in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[name]
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(
    level: str = "INFO",
    log_dir: str | Path | None = "Logs",
    retained_files: int = 10,
    logger_name: str = "sharepoint_uploader",
) -> logging.Logger:
    """Attach console and file handlers to the package logger.

    Each run writes to a new timestamped file in ``log_dir``; only the newest
    ``retained_files`` log files are kept. If the directory cannot be created
    or written, a warning is logged and only the console handler is attached.

    Args:
        level: Minimum level name.
        log_dir: Directory for log files, or None for console-only logging.
        retained_files: Number of log files to keep, including this run's.
        logger_name: Logger to configure.

    Returns:
        The configured logger.
    """
    target = logging.getLogger(logger_name)
    target.setLevel(parse_level(level))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    for handler in list(target.handlers):
        target.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    target.addHandler(console)

    if log_dir is not None:
        directory = Path(log_dir)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        try:
            directory.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(
                directory / f"{LOG_FILE_PREFIX}{stamp}.log", encoding="utf-8"
            )
        except OSError as exc:
            target.warning(
                "[configure_logging] log file unavailable, logging to console only;"
                " directory:%s;error:%s",
                directory,
                exc,
            )
            return target
        file_handler.setFormatter(formatter)
        target.addHandler(file_handler)
        prune_logs(directory, retained_files)

    return target


def prune_logs(directory: Path, retained_files: int) -> None:
    """Delete all but the newest ``retained_files`` log files in ``directory``.

    Failures are ignored; pruning never stops an upload.
    """
    with contextlib.suppress(OSError):
        logs = sorted(
            directory.glob(f"{LOG_FILE_PREFIX}*.log"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        for stale in logs[retained_files:]:
            with contextlib.suppress(OSError):
                stale.unlink()

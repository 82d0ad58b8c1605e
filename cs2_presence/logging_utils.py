from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from . import LOG_TAG, LOGGER_NAME

DEFAULT_LOG_LEVEL = logging.INFO
LOG_FILENAME = "cs2_presence.log"
_LEVEL_NAME_MAP = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}


def resolve_log_level(raw: Any) -> int:
    """Coerce a level name, number or numeric string to a logging level."""
    if isinstance(raw, bool):
        return DEFAULT_LOG_LEVEL
    if isinstance(raw, int):
        return raw if raw != logging.NOTSET else DEFAULT_LOG_LEVEL
    if isinstance(raw, str):
        token = raw.strip().upper()
        if token.isdigit():
            level = int(token)
            return level if level != logging.NOTSET else DEFAULT_LOG_LEVEL
        return _LEVEL_NAME_MAP.get(token, DEFAULT_LOG_LEVEL)
    return DEFAULT_LOG_LEVEL


def build_rotating_log_handler(
    log_dir: Path,
    filename: str,
    *,
    retention: int,
    max_bytes: int,
    formatter: Optional[logging.Formatter] = None,
) -> logging.Handler:
    """Construct a rotating file handler for the bridge log."""
    retention = max(1, retention)
    backup_count = max(0, retention - 1)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    if formatter is not None:
        handler.setFormatter(formatter)
    handler.setLevel(logging.DEBUG)
    return handler


def configure_logging(
    level: Any = DEFAULT_LOG_LEVEL,
    log_dir: Optional[Path] = None,
    *,
    retention: int = 3,
    max_bytes: int = 1024 * 1024,
) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolve_log_level(level))
    formatter = logging.Formatter(f"[%(asctime)s] [{LOG_TAG}] %(levelname)s %(message)s", "%H:%M:%S")
    if not any(getattr(handler, "_cs2_console", False) for handler in logger.handlers):
        console = logging.StreamHandler()
        console._cs2_console = True  # type: ignore[attr-defined]
        console.setFormatter(formatter)
        logger.addHandler(console)
    if log_dir is not None and not any(getattr(handler, "_cs2_file", False) for handler in logger.handlers):
        file_handler = build_rotating_log_handler(
            Path(log_dir),
            LOG_FILENAME,
            retention=retention,
            max_bytes=max_bytes,
            formatter=formatter,
        )
        file_handler._cs2_file = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)
    logger.propagate = False
    return logger

"""Logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from config.settings import AppConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# SDK transport loggers report every request at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")


def setup_logging(config: AppConfig) -> logging.Logger:
    """Configure root logging from ``config`` and return the app logger."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_to_file:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "application.log", encoding="utf-8"))

    level = logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)

    quiet_level = max(level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    return logging.getLogger("bananagen")

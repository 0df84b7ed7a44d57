"""Logging setup for the advisor service."""

from __future__ import annotations

import logging

from config_advisor.core.config import settings

PACKAGE_LOGGER = "config_advisor"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
# Per-request chatter from the HTTP clients used for Salesforce and Ollama.
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(level: str | None = None) -> None:
    """Apply the level to the package loggers and install a root handler if none exists.

    Under uvicorn the root logger is usually configured already; the package
    level is still applied so ``LOG_LEVEL`` governs advisor output either way.
    """
    level_name = (level or settings.LOG_LEVEL).upper()
    logging.getLogger(PACKAGE_LOGGER).setLevel(level_name)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not logging.getLogger().handlers:
        logging.basicConfig(level=level_name, format=LOG_FORMAT)

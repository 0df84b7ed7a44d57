from __future__ import annotations

import logging

import pytest

from config_advisor.core.logging import LOG_FORMAT, PACKAGE_LOGGER, setup_logging


@pytest.fixture
def restore_levels():
    names = (PACKAGE_LOGGER, "httpx", "httpcore")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


def test_level_applies_to_package_even_when_root_is_configured(restore_levels) -> None:
    # pytest installs its own root handlers, like uvicorn does in production.
    setup_logging("debug")

    assert logging.getLogger(PACKAGE_LOGGER).level == logging.DEBUG
    assert logging.getLogger("config_advisor.services.recalculation").getEffectiveLevel() == logging.DEBUG


def test_http_client_loggers_are_quieted(restore_levels) -> None:
    logging.getLogger("httpx").setLevel(logging.DEBUG)

    setup_logging("INFO")

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_log_format_names_the_logger() -> None:
    record = logging.LogRecord(PACKAGE_LOGGER, logging.INFO, __file__, 1, "cycle done", None, None)

    line = logging.Formatter(LOG_FORMAT).format(record)

    assert line.endswith("INFO     [config_advisor] cycle done")

"""Tests for logging setup."""

import logging
import logging.handlers
import uuid

import pytest

from meditrap.core.config import Settings
from meditrap.core.logger import configure_logging, setup_logger


@pytest.fixture
def logger_name():
    name = f"meditrap-test-{uuid.uuid4().hex[:8]}"
    yield name
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_console_only_by_default(logger_name):
    logger = setup_logger(logger_name, level="debug")
    assert logger.level == logging.DEBUG
    assert [type(h) for h in logger.handlers] == [logging.StreamHandler]


def test_file_logging(logger_name, tmp_path):
    logger = setup_logger(logger_name, log_dir=str(tmp_path / "logs"), file_logging=True, console_logging=False)
    logger.info("approval recorded")
    for handler in logger.handlers:
        handler.flush()

    assert isinstance(logger.handlers[0], logging.handlers.RotatingFileHandler)
    content = (tmp_path / "logs" / f"{logger_name}.log").read_text()
    assert "[INFO]" in content
    assert "approval recorded" in content


def test_repeat_setup_keeps_handlers(logger_name):
    setup_logger(logger_name)
    logger = setup_logger(logger_name, level="WARNING")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_invalid_level(logger_name):
    with pytest.raises(ValueError):
        setup_logger(logger_name, level="LOUD")


def test_configure_logging_quiets_dependencies():
    settings = Settings(_env_file=None, log_level="DEBUG", log_to_file=False)
    logger = configure_logging(settings)

    assert logger.name == "meditrap"
    assert logging.getLogger("passlib").level == logging.WARNING
    assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

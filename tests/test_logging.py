"""Tests for logging utilities."""

import logging
from io import StringIO

from lbfgsb.logging import (
    configure_logging,
    get_logger,
    log_level_at_most,
    set_log_level,
)


def _own_handlers(logger):
    # The test runner may attach capture handlers of its own.
    return [h for h in logger.handlers if type(h) is logging.StreamHandler]


def test_get_logger_returns_prefixed_logger():
    """Test that get_logger namespaces loggers under the package."""
    logger = get_logger("test_module")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "lbfgsb.test_module"
    assert get_logger("lbfgsb.solver").name == "lbfgsb.solver"
    assert get_logger().name == "lbfgsb"


def test_get_logger_caching():
    """Test that get_logger caches loggers."""
    assert get_logger("test_module") is get_logger("test_module")
    assert len(_own_handlers(get_logger("test_module"))) == 1


def test_logger_does_not_propagate():
    """Test that loggers don't propagate to root logger."""
    assert get_logger("test_module").propagate is False


def test_set_log_level_accepts_names_and_ints():
    """Test that set_log_level updates every cached logger."""
    logger = get_logger("test_module")

    set_log_level("DEBUG")
    assert logger.level == logging.DEBUG
    assert all(h.level == logging.DEBUG for h in logger.handlers)

    set_log_level(logging.ERROR)
    assert logger.level == logging.ERROR


def test_configure_logging_redirects_output():
    """Test configure_logging with a custom stream and format."""
    stream = StringIO()
    configure_logging(level=logging.INFO, stream=stream, format_string="%(message)s!")

    get_logger("test_module").info("Cauchy point found")
    get_logger("test_module").debug("hidden")

    assert stream.getvalue() == "Cauchy point found!\n"


def test_log_level_at_most_lowers_and_restores():
    """Test the temporary verbosity scope used by the solver."""
    stream = StringIO()
    configure_logging(level=logging.WARNING, stream=stream)
    logger = get_logger("test_module")

    with log_level_at_most(logger, logging.INFO):
        assert logger.level == logging.INFO
        logger.info("inside")
    logger.info("outside")

    assert "inside" in stream.getvalue()
    assert "outside" not in stream.getvalue()
    assert logger.level == logging.WARNING
    assert _own_handlers(logger)[0].level == logging.WARNING


def test_log_level_at_most_keeps_more_verbose_levels():
    """Test that an already verbose logger is not made quieter."""
    configure_logging(level=logging.DEBUG, stream=StringIO())
    logger = get_logger("test_module")

    with log_level_at_most(logger, logging.INFO):
        assert logger.level == logging.DEBUG
    assert logger.level == logging.DEBUG

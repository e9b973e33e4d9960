"""Logging configuration and the surrogate-safe filter"""
import io
import sys
import logging

import pytest

from kube_portforward.logging_setup import (
    SafeUnicodeFilter,
    configure_logging,
    level_for,
    tunnel_output_stream,
)


@pytest.mark.unit
@pytest.mark.parametrize("verbosity,level", [
    (-1, logging.WARNING),
    (0, logging.WARNING),
    (1, logging.INFO),
    (2, logging.DEBUG),
    (5, logging.DEBUG),
])
def test_level_for(verbosity, level):
    assert level_for(verbosity) == level


@pytest.mark.unit
def test_tunnel_output_only_at_high_verbosity():
    assert tunnel_output_stream(1) is None
    assert tunnel_output_stream(2) is sys.stdout


@pytest.mark.unit
def test_filter_replaces_surrogates():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "pod \udcff gone: %s", ("\ud800",), None)

    assert SafeUnicodeFilter().filter(record)

    record.getMessage().encode("utf-8")
    assert record.msg == "pod ? gone: %s"
    assert record.args == ("?",)


@pytest.mark.unit
def test_filter_leaves_clean_messages_alone():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "✓ ready on %s", (8080,), None)

    SafeUnicodeFilter().filter(record)

    assert record.getMessage() == "✓ ready on 8080"


@pytest.mark.unit
def test_configure_logging_writes_to_stream():
    stream = io.StringIO()
    logger = configure_logging(verbosity=2, stream=stream)

    try:
        logging.getLogger("kube_portforward.session").debug("Waiting for local port 1234")
        assert logger.level == logging.DEBUG
        assert "Waiting for local port 1234" in stream.getvalue()
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


@pytest.mark.unit
def test_configure_logging_quiet_hides_info():
    stream = io.StringIO()
    logger = configure_logging(verbosity=0, stream=stream)

    try:
        logging.getLogger("kube_portforward.session").info("✓ Port forward started")
        assert stream.getvalue() == ""
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

import logging

from gitgrade.logging import setup_logging


def test_setup_logging_levels():
    try:
        setup_logging("debug")
        assert logging.getLogger("gitgrade").level == logging.DEBUG
        assert logging.getLogger("uvicorn.access").level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
        setup_logging("not-a-level")
        assert logging.getLogger("gitgrade").level == logging.INFO
    finally:
        setup_logging(logging.INFO)

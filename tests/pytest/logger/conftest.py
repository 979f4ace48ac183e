# tests/pytest/logger/conftest.py
import logging

import pytest

from modbus_gateway.logger import get_logger

logger, buffer = get_logger("test_logger", level=logging.DEBUG, use_buffer=True)


@pytest.fixture(autouse=True)
def clean_logger_state():
    """Ensure buffer is cleared before each test."""
    buffer.clear()
    yield
    buffer.clear()


@pytest.fixture
def test_logger():
    return logger, buffer

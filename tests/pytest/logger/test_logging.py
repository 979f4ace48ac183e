import json
import logging

from modbus_gateway.logger import BufferHandler, JsonFormatter, TextFormatter, get_logger


def test_logger_creates_handlers():
    # Reset previous handlers
    logger, _ = get_logger("handler_logger", use_buffer=True)
    logger.handlers.clear()
    logger, buffer = get_logger("handler_logger", level=logging.DEBUG, use_buffer=True)

    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    handler_types = [type(h) for h in logger.handlers]
    assert logging.StreamHandler in handler_types
    assert BufferHandler in handler_types
    assert isinstance(buffer, BufferHandler)


def test_logger_does_not_duplicate_handlers():
    logger1, _ = get_logger("same_logger", use_buffer=True)
    logger2, _ = get_logger("same_logger", use_buffer=True)

    assert logger1 is logger2
    assert len(logger2.handlers) == 2


def test_logger_without_buffer():
    logger, buffer = get_logger("plain_logger")
    assert buffer is None
    assert not any(isinstance(h, BufferHandler) for h in logger.handlers)


def test_text_format_switches_stream_formatter():
    logger, _ = get_logger("text_logger", log_format="text")
    stream_handler = next(h for h in logger.handlers if isinstance(h, logging.StreamHandler))
    assert isinstance(stream_handler.formatter, TextFormatter)

    get_logger("text_logger", log_format="json")
    assert isinstance(stream_handler.formatter, JsonFormatter)


def test_json_formatter_output():
    record = logging.LogRecord("modbus_gateway.test", logging.ERROR, __file__, 1,
                               "value %s", (42,), None)
    record.endpoint = "pot"
    data = json.loads(JsonFormatter().format(record))

    assert data["message"] == "value 42"
    assert data["level"] == "ERROR"
    assert data["logger"] == "modbus_gateway.test"
    assert data["endpoint"] == "pot"
    assert isinstance(data["id"], int)
    assert "timestamp" in data


def test_same_record_keeps_its_id():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    formatter = JsonFormatter()
    first = json.loads(formatter.format(record))["id"]
    second = json.loads(formatter.format(record))["id"]
    assert first == second


def test_json_after_text_formatter_has_no_asctime():
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    TextFormatter().format(record)
    data = json.loads(JsonFormatter().format(record))
    assert "asctime" not in data
    assert data["message"] == "msg"

import logging
import sys
from typing import Optional, Tuple, Union

from .bufferhandler import BufferHandler
from .formatter import JsonFormatter, TextFormatter

# Single global buffer for all logs
shared_buffer_handler = BufferHandler()


def _make_formatter(log_format: str) -> logging.Formatter:
    return TextFormatter() if log_format == "text" else JsonFormatter()


def get_logger(name: str = "modbus_gateway",
               level: Union[int, str] = logging.INFO,
               use_buffer: bool = False,
               log_format: str = "json") -> Tuple[logging.Logger, Optional[BufferHandler]]:
    """
    Return a logger that writes to stdout and, optionally, to the shared buffer.

    Calling it again for the same name adjusts the level and the stdout format
    instead of adding handlers.
    """
    gateway_logger = logging.getLogger(name)
    gateway_logger.setLevel(level)
    gateway_logger.propagate = False

    stream_handlers = [h for h in gateway_logger.handlers
                       if isinstance(h, logging.StreamHandler) and not isinstance(h, BufferHandler)]
    if not stream_handlers:
        stream_handler = logging.StreamHandler(sys.stdout)
        gateway_logger.addHandler(stream_handler)
        stream_handlers = [stream_handler]
    for handler in stream_handlers:
        handler.setFormatter(_make_formatter(log_format))

    buffer_handler = None
    if use_buffer:
        if shared_buffer_handler not in gateway_logger.handlers:
            gateway_logger.addHandler(shared_buffer_handler)
        buffer_handler = shared_buffer_handler

    return gateway_logger, buffer_handler

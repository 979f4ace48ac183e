import itertools
import json
import logging
import threading
from datetime import datetime, timezone

# LogRecord attributes that are not user supplied extras
_RESERVED = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "asctime", "taskName", "log_id",
))

TEXT_FORMAT = "[%(levelname)s] %(asctime)s - %(message)s"


class JsonFormatter(logging.Formatter):
    """
    Formats records as one JSON object per line.

    Every record gets a process-wide increasing ``id`` so buffered logs can be
    fetched incrementally. Extras passed with ``extra=`` (e.g. ``endpoint``)
    are copied into the object.
    """
    _counter = itertools.count(1)
    _counter_lock = threading.Lock()

    def format(self, record: logging.LogRecord) -> str:
        log_id = getattr(record, "log_id", None)
        if log_id is None:
            with self._counter_lock:
                log_id = next(self._counter)
            record.log_id = log_id

        log_data = {
            "id": log_id,
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(TEXT_FORMAT)

import json
import logging
from collections import deque
from threading import Lock
from typing import List, Optional

from .formatter import JsonFormatter


class BufferHandler(logging.Handler):
    """
    Custom logging handler that stores log records in memory (FIFO).
    Logs are formatted using the attached formatter (JSON).
    """
    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.buffer = deque(maxlen=capacity)
        self._lock = Lock()
        self.setFormatter(JsonFormatter())

    def emit(self, record: logging.LogRecord) -> None:
        with self._lock:
            try:
                self.buffer.append(self.format(record))
            except Exception:  # pylint: disable=broad-except
                self.handleError(record)

    @staticmethod
    def filter_logs(logs, level=None, min_id=None, max_id=None):
        result = logs
        if level is not None:
            result = [log for log in result if log.get("level") == level]
        if min_id is not None:
            result = [log for log in result if log.get("id", 0) >= min_id]
        if max_id is not None:
            result = [log for log in result if log.get("id", 0) <= max_id]
        return result

    def get_logs(self, count: Optional[int] = None,
                 min_id: Optional[int] = None,
                 level: Optional[str] = None) -> List[dict]:
        """Retrieve logs from buffer, oldest first."""
        with self._lock:
            logs = [json.loads(item) for item in self.buffer]
        logs = self.filter_logs(logs, level=level, min_id=min_id)
        if count is not None and count < len(logs):
            logs = logs[-count:]
        return logs

    def clear(self) -> None:
        with self._lock:
            self.buffer.clear()

    def __len__(self):
        return len(self.buffer)

"""
EyeQ — Structured Session Event Logger
=======================================
Records session-level events (start/end summaries, refocus alerts, mode
changes, inference failures) as JSON objects.

Key Features:
  - Every event goes to the console logger as one JSON line
  - Optional JSONL file sink (off by default: no session data outlives
    the session unless an operator configures a path)
  - Thread-safe writes
  - NumPy-aware serialization
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from typing import Any, Dict, Optional

import numpy as np

from eyeq_utils import setup_logger

_log = setup_logger("EyeQEvents")

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class EyeQJSONEncoder(json.JSONEncoder):
    """Handles NumPy and Enum types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if hasattr(obj, "value") and isinstance(getattr(obj, "value"), (str, int)):
            return obj.value
        return super().default(obj)


class EyeQLogger:
    """Structured event log for EyeQ sessions."""

    def __init__(self, log_path: Optional[str] = None):
        self.log_path = log_path
        self._file = None
        self._lock = threading.Lock()

        if log_path:
            log_dir = os.path.dirname(log_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            self._file = open(log_path, "a", encoding="utf-8")

    def log(self, data: Dict[str, Any], level: str = "INFO", event: Optional[str] = None) -> dict:
        """Emit one structured entry and return it."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data,
        }
        line = json.dumps(entry, cls=EyeQJSONEncoder)

        with self._lock:
            _log.log(_LEVELS.get(level, logging.INFO), line)
            if self._file is not None and not self._file.closed:
                self._file.write(line + "\n")
                self._file.flush()
        return entry

    def event(self, name: str, **data) -> dict:
        return self.log(data, level="INFO", event=name)

    def warn(self, message: str, context: Optional[dict] = None) -> dict:
        return self.log({"message": message, "context": context}, level="WARNING", event="warning")

    def error(self, message: str, exception: Optional[BaseException] = None) -> dict:
        err_details = str(exception) if exception else None
        return self.log({"message": message, "exception": err_details}, level="ERROR", event="error")

    def close(self) -> None:
        """Flush and close the file sink, if any."""
        with self._lock:
            if self._file is not None and not self._file.closed:
                self._file.close()


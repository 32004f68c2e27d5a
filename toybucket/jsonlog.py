"""Line-oriented JSON logger."""

from __future__ import annotations

import json
import threading
import traceback
from datetime import datetime, timezone
from enum import IntEnum
from typing import Mapping, Optional, TextIO, Union


class Level(IntEnum):
    """Severity of a log entry; entries below a logger's minimum are dropped."""

    INFO = 0
    ERROR = 1
    FATAL = 2
    OFF = 3

    def __str__(self) -> str:
        return {Level.INFO: "INFO", Level.ERROR: "ERROR", Level.FATAL: "FATAL"}.get(
            self, ""
        )


class Logger:
    """Writes one JSON object per line to a text stream."""

    def __init__(self, out: TextIO, min_level: Level = Level.INFO) -> None:
        self.out = out
        self.min_level = min_level
        self._lock = threading.Lock()

    def print_info(
        self, message: str, properties: Optional[Mapping[str, str]] = None
    ) -> None:
        self._print(Level.INFO, message, properties)

    def print_error(
        self, err: object, properties: Optional[Mapping[str, str]] = None
    ) -> None:
        self._print(Level.ERROR, str(err), properties)

    def print_fatal(
        self, err: object, properties: Optional[Mapping[str, str]] = None
    ) -> None:
        """Log at FATAL level and terminate with exit status 1."""
        self._print(Level.FATAL, str(err), properties)
        raise SystemExit(1)

    def write(self, message: Union[bytes, str]) -> int:
        """Log ``message`` at ERROR level, so the logger can act as a stream."""
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        return self._print(Level.ERROR, message, None)

    def _print(
        self, level: Level, message: str, properties: Optional[Mapping[str, str]]
    ) -> int:
        if level < self.min_level:
            return 0
        entry: dict = {
            "level": str(level),
            "time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "message": message,
        }
        if properties:
            entry["properties"] = dict(properties)
        if level >= Level.ERROR:
            entry["trace"] = "".join(traceback.format_stack())
        try:
            line = json.dumps(entry, ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            line = f"{Level.ERROR}: unable to marshal log message: {exc}"
        with self._lock:
            written = self.out.write(line + "\n")
        return written if written is not None else len(line) + 1
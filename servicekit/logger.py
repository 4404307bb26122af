"""Structured JSON logging with optional per-level event hooks."""

from __future__ import annotations

import json
import logging
import os
import platform
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Callable, Optional, TextIO

_BAD_KEY = "!BADKEY"


class Level(IntEnum):
    """Logging levels, spaced so that intermediate levels can be expressed."""

    DEBUG = -4
    INFO = 0
    WARN = 4
    ERROR = 8


@dataclass(frozen=True)
class Record:
    """The data handed to an event function for one log call."""

    time: datetime
    message: str
    level: Any
    attributes: dict[str, Any] = field(default_factory=dict)


EventFn = Callable[[Record], None]
TraceIDFn = Callable[[], str]


@dataclass
class Events:
    """Functions to be run when a record of the matching level is logged."""

    debug: Optional[EventFn] = None
    info: Optional[EventFn] = None
    warn: Optional[EventFn] = None
    error: Optional[EventFn] = None

    def for_level(self, level: int) -> Optional[EventFn]:
        """Return the event function registered for exactly this level."""
        return {
            Level.DEBUG: self.debug,
            Level.INFO: self.info,
            Level.WARN: self.warn,
            Level.ERROR: self.error,
        }.get(level)


def _level_name(level: int) -> str:
    level = int(level)
    if level < Level.INFO:
        name, base = "DEBUG", Level.DEBUG
    elif level < Level.WARN:
        name, base = "INFO", Level.INFO
    elif level < Level.ERROR:
        name, base = "WARN", Level.WARN
    else:
        name, base = "ERROR", Level.ERROR
    offset = level - int(base)
    return name if offset == 0 else f"{name}{offset:+d}"


def _as_level(level: int) -> Any:
    try:
        return Level(level)
    except ValueError:
        return int(level)


def _pairs(args: tuple[Any, ...]) -> list[tuple[str, Any]]:
    """Turn alternating key/value arguments into pairs."""
    pairs: list[tuple[str, Any]] = []
    items = list(args)
    while items:
        key = items.pop(0)
        if isinstance(key, str):
            if items:
                pairs.append((key, items.pop(0)))
            else:
                pairs.append((_BAD_KEY, key))
        else:
            pairs.append((_BAD_KEY, key))
    return pairs


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def _source(depth: int) -> Optional[str]:
    try:
        frame = sys._getframe(depth + 1)
    except ValueError:
        return None
    return f"{os.path.basename(frame.f_code.co_filename)}:{frame.f_lineno}"


def quote_key(key: str) -> bool:
    """Report whether a key must be quoted."""
    return len(key) == 0 or any(ch in key for ch in "= \t\r\n\"`")


def quote_value(value: str) -> bool:
    """Report whether a value must be quoted."""
    return any(ch in value for ch in " \t\r\n\"`")


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class Logger:
    """Writes one JSON document per log call to a text stream."""

    def __init__(
        self,
        stream: TextIO,
        min_level: int = Level.INFO,
        service_name: str = "",
        trace_id_fn: Optional[TraceIDFn] = None,
        events: Optional[Events] = None,
    ) -> None:
        self._stream = stream
        self._min_level = int(min_level)
        self._service_name = service_name
        self._trace_id_fn = trace_id_fn
        self._events = events if events is not None else Events()
        self._lock = threading.Lock()

    def enabled(self, level: int) -> bool:
        """Report whether records at this level are written."""
        return int(level) >= self._min_level

    def log(self, level: int, msg: str, *args: Any, caller: int = 1) -> None:
        """Log at any level; caller is how many frames up the source is taken."""
        if not self.enabled(level):
            return
        self._write(level, msg, args, _source(caller))

    def debug(self, msg: str, *args: Any) -> None:
        self.log(Level.DEBUG, msg, *args, caller=2)

    def info(self, msg: str, *args: Any) -> None:
        self.log(Level.INFO, msg, *args, caller=2)

    def warn(self, msg: str, *args: Any) -> None:
        self.log(Level.WARN, msg, *args, caller=2)

    def error(self, msg: str, *args: Any) -> None:
        self.log(Level.ERROR, msg, *args, caller=2)

    def build_info(self) -> None:
        """Log information about the running interpreter."""
        settings = [
            ("implementation", platform.python_implementation()),
            ("compiler", platform.python_compiler()),
            ("platform", sys.platform),
            ("executable", sys.executable),
        ]
        values: list[str] = []
        for key, value in settings:
            values.append(_quote(key) if quote_key(key) else key)
            values.append(_quote(value) if quote_value(value) else value)
        values += ["pythonversion", platform.python_version()]
        self.log(Level.INFO, "build info", *values, caller=2)

    def _forward(self, level: int, msg: str, source: Optional[str]) -> None:
        if self.enabled(level):
            self._write(level, msg, (), source)

    def _write(self, level: int, msg: str, args: tuple[Any, ...], source: Optional[str]) -> None:
        attrs = _pairs(args)
        if self._trace_id_fn is not None:
            attrs.append(("trace_id", self._trace_id_fn()))

        now = datetime.now().astimezone()

        event_fn = self._events.for_level(int(level))
        if event_fn is not None:
            event_fn(Record(now, msg, _as_level(level), dict(attrs)))

        entry: dict[str, Any] = {
            "time": now.isoformat(timespec="milliseconds"),
            "level": _level_name(level),
        }
        if source is not None:
            entry["file"] = source
        entry["msg"] = msg
        entry["service"] = self._service_name
        for key, value in attrs:
            entry[key] = value

        line = json.dumps(entry, default=_json_default, ensure_ascii=False)
        with self._lock:
            self._stream.write(line + "\n")
            flush = getattr(self._stream, "flush", None)
            if flush is not None:
                flush()


class _ForwardingHandler(logging.Handler):
    def __init__(self, target: Logger, level: int) -> None:
        super().__init__()
        self._target = target
        self._level = level

    def emit(self, record: logging.LogRecord) -> None:
        try:
            source = f"{os.path.basename(record.pathname)}:{record.lineno}"
            self._target._forward(self._level, record.getMessage(), source)
        except Exception:
            self.handleError(record)


def new_std_logger(logger: Logger, level: int) -> logging.Logger:
    """Return a standard-library logger whose messages go to logger at level."""
    std = logging.Logger(f"servicekit.std.{id(logger)}")
    std.propagate = False
    std.addHandler(_ForwardingHandler(logger, int(level)))
    return std
"""Context-aware logging to the console and a dated JSON log file."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import IO, Any

from microcore.metadata import Context, from_incoming_context, from_outgoing_context

REQUEST_ID = "request_id"

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_TRACE = 5
_DISABLED = logging.CRITICAL + 10

_LEVELS = {
    "trace": _TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "disabled": _DISABLED,
}

_NAMES = {
    _TRACE: "trace",
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}


@dataclass
class LogOption:
    """Logger settings as read from configuration."""

    dir_path: str = ""
    max_file_size: str = ""
    rotate_duration: str = ""
    level: str = ""


def _level_name(record: logging.LogRecord) -> str:
    return _NAMES.get(record.levelno, record.levelname.lower())


def _timestamp(record: logging.LogRecord) -> str:
    return time.strftime(_TIME_FORMAT, time.localtime(record.created))


def _fields(record: logging.LogRecord) -> dict[str, str]:
    return getattr(record, "fields", {})


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        level = f"| {_level_name(record):<6}|".upper()
        parts = [_timestamp(record), level, record.getMessage()]
        parts.extend(f"{key}:{value};" for key, value in _fields(record).items())
        return " ".join(parts)


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {"level": _level_name(record)}
        entry.update(_fields(record))
        entry["time"] = _timestamp(record)
        entry["message"] = record.getMessage()
        return json.dumps(entry, ensure_ascii=False)


class _ConsoleHandler(logging.Handler):
    """Writes to the given stream, or to the current standard output."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        super().__init__()
        self._stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self._stream if self._stream is not None else sys.stdout
            stream.write(self.format(record) + "\n")
            stream.flush()
        except Exception:
            self.handleError(record)


def context_fields(ctx: Context | None) -> dict[str, str]:
    """Return the fields a log line takes from ``ctx``: the request id."""
    if ctx is None:
        return {REQUEST_ID: ""}
    md = from_outgoing_context(ctx)
    if md is None:
        md = from_incoming_context(ctx)
    if md is None:
        value = ctx.value(REQUEST_ID)
        return {REQUEST_ID: value if isinstance(value, str) else ""}
    return {REQUEST_ID: md.first(REQUEST_ID)}


class Logger:
    """Writes leveled messages, tagged with context fields, to console and file."""

    def __init__(
        self,
        level: str = "info",
        file_path: str | None = None,
        stream: IO[str] | None = None,
    ) -> None:
        self._logger = logging.Logger("microcore")
        self._logger.propagate = False
        self._logger.setLevel(_TRACE)

        console = _ConsoleHandler(stream)
        console.setFormatter(_ConsoleFormatter())
        self._logger.addHandler(console)

        if file_path:
            try:
                file_handler = logging.FileHandler(file_path, encoding="utf-8")
            except OSError:
                file_handler = None
            if file_handler is not None:
                file_handler.setFormatter(_JSONFormatter())
                self._logger.addHandler(file_handler)

        self.set_level(level)

    def _emit(self, level: int, ctx: Context | None, msg: str, args: tuple[Any, ...]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        text = msg % args if args else msg
        self._logger.log(level, text, extra={"fields": context_fields(ctx)})

    def debug(self, ctx: Context | None, msg: str, *args: Any) -> None:
        """Log at debug level; ``args`` fill ``%`` placeholders in ``msg``."""
        self._emit(logging.DEBUG, ctx, msg, args)

    def info(self, ctx: Context | None, msg: str, *args: Any) -> None:
        """Log at info level."""
        self._emit(logging.INFO, ctx, msg, args)

    def warn(self, ctx: Context | None, msg: str, *args: Any) -> None:
        """Log at warn level."""
        self._emit(logging.WARNING, ctx, msg, args)

    def error(self, ctx: Context | None, msg: str, *args: Any) -> None:
        """Log at error level."""
        self._emit(logging.ERROR, ctx, msg, args)

    def fatal(self, ctx: Context | None, msg: str, *args: Any) -> None:
        """Log at fatal level, then exit with status 1."""
        self._emit(logging.CRITICAL, ctx, msg, args)
        raise SystemExit(1)

    def set_level(self, level: str) -> None:
        """Set the minimum level by name; unknown names are ignored."""
        value = _LEVELS.get(level)
        if value is not None:
            self._logger.setLevel(value)


def new_logger(option: LogOption) -> Logger | None:
    """Build a logger from ``option``, filling its defaults.

    Returns ``None`` when the log directory cannot be created.
    """
    if not option.max_file_size:
        option.max_file_size = "500M"
    if not option.level:
        option.level = "info"
    if not option.rotate_duration:
        option.rotate_duration = "1h"

    try:
        os.makedirs(option.dir_path, exist_ok=True)
    except OSError as err:
        print("init log Mkdir failed, err:", err)
        return None

    file_name = option.dir_path + time.strftime("%Y-%m-%d") + ".log"
    return Logger(level=option.level, file_path=file_name)


_logger: Logger | None = None
_fallback: Logger | None = None


def init_logger(option: LogOption) -> None:
    """Install the process-wide logger built from ``option``."""
    global _logger
    _logger = new_logger(option)


def get_instance() -> Logger | None:
    """Return the process-wide logger, if one was installed."""
    return _logger


def _current() -> Logger:
    global _fallback
    if _logger is not None:
        return _logger
    if _fallback is None:
        _fallback = Logger()
    return _fallback


def debug(ctx: Context | None, msg: str, *args: Any) -> None:
    """Log at debug level with the process-wide logger."""
    _current().debug(ctx, msg, *args)


def info(ctx: Context | None, msg: str, *args: Any) -> None:
    """Log at info level with the process-wide logger."""
    _current().info(ctx, msg, *args)


def warn(ctx: Context | None, msg: str, *args: Any) -> None:
    """Log at warn level with the process-wide logger."""
    _current().warn(ctx, msg, *args)


def error(ctx: Context | None, msg: str, *args: Any) -> None:
    """Log at error level with the process-wide logger."""
    _current().error(ctx, msg, *args)


def fatal(ctx: Context | None, msg: str, *args: Any) -> None:
    """Log at fatal level with the process-wide logger and exit."""
    _current().fatal(ctx, msg, *args)


def set_level(level: str) -> None:
    """Set the level of the process-wide logger."""
    _current().set_level(level)
"""Logging configuration: JSON logs, request-scoped loggers and error filtering."""

from __future__ import annotations

import json
import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import TextIO

_SLOG_LEVELS = {"DEBUG": -4, "INFO": 0, "WARN": 4, "ERROR": 8}
_LEVEL_RE = re.compile(r"(?i)(debug|info|warn|error)([+-]\d+)?")

_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


@dataclass
class ErrorLogFilter:
    """A stream that drops "context canceled" messages and forwards the rest."""

    unwrap: TextIO | None = None

    def write(self, data):
        text = data.decode("utf-8", "replace") if isinstance(data, (bytes, bytearray)) else data
        if "context canceled" in text:
            return len(data)
        if self.unwrap is not None:
            return self.unwrap.write(data)
        return len(data)

    def flush(self) -> None:
        if self.unwrap is not None:
            self.unwrap.flush()


def _parse_level(text: str) -> int:
    match = _LEVEL_RE.fullmatch(text)
    if match is None:
        raise ValueError(f'level string "{text}": unknown name')
    slog_level = _SLOG_LEVELS[match.group(1).upper()] + int(match.group(2) or 0)
    return 20 + (slog_level * 5) // 2


def _level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    return "DEBUG"


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": datetime.fromtimestamp(record.created).astimezone().isoformat(),
            "level": _level_name(record.levelno),
            "source": {
                "function": record.funcName,
                "file": record.pathname,
                "line": record.lineno,
            },
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                entry[key] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def init_logging(level: str) -> int:
    """Send JSON logs to stderr at the named level and return that level."""
    try:
        program_level = _parse_level(level)
    except ValueError as exc:
        sys.stderr.write(f"invalid log level {level}: {exc}, using info\n")
        program_level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JSONFormatter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(program_level)
    return program_level


def request_logger(environ: dict) -> logging.LoggerAdapter:
    """Return a logger carrying identifying details of the request."""
    return logging.LoggerAdapter(
        logging.getLogger("anubis"),
        {
            "user_agent": environ.get("HTTP_USER_AGENT", ""),
            "accept_language": environ.get("HTTP_ACCEPT_LANGUAGE", ""),
            "priority": environ.get("HTTP_PRIORITY", ""),
            "x-forwarded-for": environ.get("HTTP_X_FORWARDED_FOR", ""),
            "x-real-ip": environ.get("HTTP_X_REAL_IP", ""),
        },
    )


def filtered_http_logger() -> logging.Logger:
    """Return a stderr logger for HTTP server errors that hides cancelled requests."""
    log = logging.getLogger("anubis.http")
    for existing in log.handlers[:]:
        log.removeHandler(existing)
    handler = logging.StreamHandler(ErrorLogFilter(unwrap=sys.stderr))
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(message)s", datefmt="%Y/%m/%d %H:%M:%S")
    )
    log.addHandler(handler)
    log.propagate = False
    return log
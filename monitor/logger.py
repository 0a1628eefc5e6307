"""
Logging setup for the bot process.

Three sinks hang off the root logger:
  - stderr: colored one-line records at the configured level
  - logs/run_YYYYMMDD_HHMMSS.log: everything, including DEBUG, with thread and source line
  - optional ndjson file for machine consumption

The controller and the dashboard server run on their own threads, so console
lines carry the thread name when it is not the main thread. Every sink shares
one SecretRedactingFilter so the owner's signing key never reaches disk.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone

_ANSI = {
    "reset": "\033[0m",
    "dim": "\033[2m",
    "red": "\033[31m",
    "yellow": "\033[33m",
    "cyan": "\033[36m",
    "bold_red": "\033[1;31m",
}

# levelname -> (color key, three-letter tag)
_LEVELS = {
    "DEBUG": ("dim", "DBG"),
    "INFO": ("cyan", "INF"),
    "WARNING": ("yellow", "WRN"),
    "ERROR": ("red", "ERR"),
    "CRITICAL": ("bold_red", "CRT"),
}

_MASK = "***"
_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn", "uvicorn.error", "uvicorn.access")


def _exc_summary(record: logging.LogRecord) -> str | None:
    if record.exc_info and record.exc_info[1] is not None:
        exc = record.exc_info[1]
        return f"{type(exc).__name__}: {exc}"
    return None


class ConsoleFormatter(logging.Formatter):
    """`HH:MM:SS TAG [package] (thread) message`, colored when stderr is a terminal."""

    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color and _supports_color()

    def _paint(self, key: str, text: str) -> str:
        if not self._use_color:
            return text
        return f"{_ANSI[key]}{text}{_ANSI['reset']}"

    def format(self, record: logging.LogRecord) -> str:
        color, tag = _LEVELS.get(record.levelname, ("dim", "???"))
        parts = [
            self._paint("dim", time.strftime("%H:%M:%S", time.localtime(record.created))),
            self._paint(color, tag),
            self._paint("dim", f"[{record.name.split('.')[0]}]"),
        ]
        if record.threadName and record.threadName != threading.main_thread().name:
            parts.append(self._paint("dim", f"({record.threadName})"))
        parts.append(record.getMessage())
        line = " ".join(parts)

        summary = _exc_summary(record)
        if summary:
            line += "\n" + self._paint("red", f"     {summary}")
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        summary = _exc_summary(record)
        if summary:
            entry["exception"] = summary
        return json.dumps(entry, separators=(",", ":"))


class SecretRedactingFilter(logging.Filter):
    """Mask configured secrets in the rendered message. Secrets shorter than 8 chars are ignored."""

    def __init__(self, secrets: list[str] | tuple[str, ...] = ()):
        super().__init__()
        self._secrets = tuple(s for s in secrets if s and len(s) >= 8)

    def filter(self, record: logging.LogRecord) -> bool:
        if self._secrets:
            rendered = record.getMessage()
            masked = rendered
            for secret in self._secrets:
                masked = masked.replace(secret, _MASK)
            if masked != rendered:
                record.msg, record.args = masked, None
        return True


def _attach(
    root: logging.Logger,
    handler: logging.Handler,
    formatter: logging.Formatter,
    level: int,
    redactor: logging.Filter,
) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(redactor)
    root.addHandler(handler)


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str | None = None,
    secrets: list[str] | tuple[str, ...] = (),
) -> str:
    """
    Replace the root logger's handlers with the three sinks described above.

    Args:
        level: console level name (file sinks always get DEBUG)
        json_log_file: ndjson path, or None to skip
        log_dir: directory for the verbose log (default: ./logs beside the packages)
        secrets: strings to mask in every sink

    Returns:
        Path of the verbose log file.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    redactor = SecretRedactingFilter(secrets)
    console_level = getattr(logging, level.upper(), logging.INFO)
    _attach(root, logging.StreamHandler(sys.stderr), ConsoleFormatter(), console_level, redactor)

    if log_dir is None:
        log_dir = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")
    os.makedirs(log_dir, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(log_dir, f"run_{stamp}.log")
    verbose = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(threadName)s %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    _attach(root, logging.FileHandler(log_path, mode="a"), verbose, logging.DEBUG, redactor)

    if json_log_file:
        _attach(root, logging.FileHandler(json_log_file, mode="a"), JSONFormatter(), logging.DEBUG, redactor)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()

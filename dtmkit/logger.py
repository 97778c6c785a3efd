"""Process-wide logging with printf-style helpers.

The active logger is a standard :class:`logging.Logger` configured by
:func:`init_log` / :func:`init_log2`, or any object with ``debug``, ``info``,
``warning`` and ``error`` methods installed through :func:`with_logger`.
"""

from __future__ import annotations

import gzip
import json
import logging
import logging.handlers
import os
import re
import shutil
import sys
import time
import traceback
from datetime import datetime
from typing import Any

STD_ERR = "stderr"
STD_OUT = "stdout"

_LEVELS = {
    "": logging.INFO,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "dpanic": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}
_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warn",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}
_COLORS = {
    logging.DEBUG: "\x1b[35m",
    logging.INFO: "\x1b[34m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[31m",
}
_RESET = "\x1b[0m"
_DEFAULT_MAX_SIZE_MB = 100
_UNLIMITED_BACKUPS = 9999
_BACKUP_SUFFIX = re.compile(r"\.\d+(\.gz)?$")
_REQUIRED_METHODS = ("debug", "info", "warning", "error")

_base = logging.getLogger("dtmkit")
_logger: Any = _base


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="milliseconds")


def _level_name(levelno: int) -> str:
    return _LEVEL_NAMES.get(levelno, logging.getLevelName(levelno).lower())


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "level": _level_name(record.levelno),
            "ts": _timestamp(record),
            "caller": f"{record.filename}:{record.lineno}",
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["stacktrace"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class _ConsoleFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        level = f"{_COLORS.get(record.levelno, '')}{_level_name(record.levelno).upper()}{_RESET}"
        return f"{_timestamp(record)}\t{level}\t{record.filename}:{record.lineno}\t{record.getMessage()}"


def _gzip_rotate(source: str, dest: str) -> None:
    with open(source, "rb") as src, gzip.open(dest, "wb") as dst:
        shutil.copyfileobj(src, dst)
    os.remove(source)


class _RotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Size-based rotation with optional age limit and gzip compression."""

    def __init__(self, filename: str, settings: dict[str, Any]) -> None:
        max_size = int(settings.get("maxsize") or _DEFAULT_MAX_SIZE_MB)
        backups = int(settings.get("maxbackups") or _UNLIMITED_BACKUPS)
        super().__init__(
            filename,
            maxBytes=max_size * 1024 * 1024,
            backupCount=backups,
            encoding="utf-8",
        )
        self._max_age_days = float(settings.get("maxage") or 0)
        if settings.get("compress"):
            self.namer = lambda name: name + ".gz"
            self.rotator = _gzip_rotate

    def doRollover(self) -> None:
        super().doRollover()
        if self._max_age_days > 0:
            self._remove_expired()

    def _remove_expired(self) -> None:
        cutoff = time.time() - self._max_age_days * 86400
        directory, base = os.path.split(self.baseFilename)
        directory = directory or "."
        for name in os.listdir(directory):
            if not name.startswith(base) or not _BACKUP_SUFFIX.fullmatch(name[len(base):]):
                continue
            path = os.path.join(directory, name)
            if os.path.getmtime(path) < cutoff:
                os.remove(path)


def _format(fmt: str, args: tuple) -> str:
    if not args:
        return fmt
    pattern = fmt.replace("%v", "%s").replace("%w", "%s").replace("%q", "%r")
    try:
        return pattern % args
    except (TypeError, ValueError):
        return " ".join([fmt, *map(str, args)])


def _parse_level(level: str) -> int:
    threshold = _LEVELS.get(level.lower())
    if threshold is None:
        fatal_if_error(ValueError(f'unrecognized level: "{level}"'))
    return threshold


def _parse_rotation(config_json: str) -> dict[str, Any]:
    try:
        settings = json.loads(config_json)
        if not isinstance(settings, dict):
            raise ValueError("expected a JSON object")
    except ValueError as exc:
        fatalf_if(True, "bad config LogRotateConfigJSON: %v", exc)
    return {str(key).lower(): value for key, value in settings.items()}


def _make_handler(output: str, rotation: dict[str, Any] | None) -> logging.Handler:
    if output == STD_OUT:
        return logging.StreamHandler(sys.stdout)
    if output == STD_ERR:
        return logging.StreamHandler(sys.stderr)
    try:
        if rotation is not None:
            return _RotatingFileHandler(output, rotation)
        return logging.FileHandler(output, encoding="utf-8")
    except OSError as exc:
        fatal_if_error(exc)
        raise


def init_log(level: str) -> None:
    """Log to stdout at ``level`` (debug, info, warn or error)."""
    init_log2(level, STD_OUT, 0, "")


def init_log2(level: str, outputs: str, log_rotation_enable: int, log_rotate_config_json: str) -> None:
    """Log at ``level`` to the comma separated ``outputs``, rotating files if enabled."""
    global _logger
    threshold = _parse_level(level)
    targets = outputs.split(",")
    rotation = None
    if log_rotation_enable and any(t not in (STD_ERR, STD_OUT) for t in targets):
        rotation = _parse_rotation(log_rotate_config_json)
    formatter: logging.Formatter = _ConsoleFormatter() if os.environ.get("DTM_DEBUG") else _JSONFormatter()
    handlers = [_make_handler(target, rotation) for target in targets]

    for old in list(_base.handlers):
        _base.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setFormatter(formatter)
        _base.addHandler(handler)
    _base.setLevel(threshold)
    _base.propagate = False
    _logger = _base


def with_logger(log: Any) -> None:
    """Replace the active logger with ``log``.

    Raises :class:`TypeError` if ``log`` lacks any of the logging methods.
    """
    global _logger
    if not isinstance(log, logging.Logger):
        missing = [name for name in _REQUIRED_METHODS if not callable(getattr(log, name, None))]
        if missing:
            raise TypeError(f"logger is missing methods: {', '.join(missing)}")
    _logger = log


def _emit(level: int, method: str, fmt: str, args: tuple) -> None:
    message = _format(fmt, args)
    if isinstance(_logger, logging.Logger):
        _logger.log(level, message, stacklevel=3)
    else:
        getattr(_logger, method)(message)


def debugf(fmt: str, *args: Any) -> None:
    """Log at debug level."""
    _emit(logging.DEBUG, "debug", fmt, args)


def infof(fmt: str, *args: Any) -> None:
    """Log at info level."""
    _emit(logging.INFO, "info", fmt, args)


def warnf(fmt: str, *args: Any) -> None:
    """Log at warn level."""
    _emit(logging.WARNING, "warning", fmt, args)


def errorf(fmt: str, *args: Any) -> None:
    """Log at error level."""
    _emit(logging.ERROR, "error", fmt, args)


def fatalf_if(cond: bool, fmt: str, *args: Any) -> None:
    """If ``cond`` holds, print the stack and message to stderr and exit with status 1."""
    if not cond:
        return
    traceback.print_stack(file=sys.stderr)
    stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
    print(f"{stamp} {_format(fmt, args)}", file=sys.stderr)
    raise SystemExit(1)


def fatal_if_error(err: BaseException | None) -> None:
    """Exit fatally when ``err`` is set."""
    fatalf_if(err is not None, "fatal error: %v", err)


init_log(os.environ.get("LOG_LEVEL", ""))
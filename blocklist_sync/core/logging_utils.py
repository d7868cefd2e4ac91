from __future__ import annotations

import datetime as dt
import json
import logging
import socket
import sys
import uuid
from logging.handlers import RotatingFileHandler
from typing import Any

from loguru import logger as loguru_logger

# Attributes of a bare LogRecord; anything else on a record came in through ``extra=``.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
}

# Queue and merge bookkeeping, nested under "sync" in JSON output.
_SYNC_FIELDS = frozenset(
    {
        "identity",
        "operation_type",
        "retry_count",
        "next_retry_time",
        "uploaded",
        "downloaded",
        "upload_failed",
        "user_count",
    }
)

_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler")


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _to_json_value(obj: Any) -> str:
    if isinstance(obj, dt.datetime):
        return obj.isoformat()
    return str(obj)


class SyncLogFormatter(logging.Formatter):
    """One JSON object per record, with sync bookkeeping grouped under ``sync``."""

    def __init__(self, include_location: bool = True):
        super().__init__()
        self.include_location = include_location
        self.hostname = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": dt.datetime.fromtimestamp(record.created, tz=dt.UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "hostname": self.hostname,
        }
        if self.include_location:
            payload["location"] = f"{record.module}:{record.funcName}:{record.lineno}"
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        grouped: dict[str, dict[str, Any]] = {"sync": {}, "extra": {}}
        for key, value in _extras(record).items():
            if key in ("correlation_id", "cid"):
                payload["correlation_id"] = value
            elif key not in payload:
                grouped["sync" if key in _SYNC_FIELDS else "extra"][key] = value
        payload.update({name: fields for name, fields in grouped.items() if fields})

        return json.dumps(
            payload, ensure_ascii=False, default=_to_json_value, separators=(",", ":")
        )


class LoguruBridge(logging.Handler):
    """Re-emit stdlib records through loguru with their ``extra`` fields bound."""

    def emit(self, record: logging.LogRecord) -> None:
        level: int | str
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        loguru_logger.bind(logger_name=record.name, **_extras(record)).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def _install_loguru(level: str, log_file: str | None, max_file_size: str, retention: str) -> None:
    loguru_logger.remove()
    loguru_logger.add(sys.stderr, level=level, serialize=True, enqueue=True, diagnose=False)
    if log_file:
        loguru_logger.add(
            log_file,
            level=level,
            serialize=True,
            rotation=max_file_size,
            retention=retention,
            compression="gz",
            enqueue=True,
        )
    logging.getLogger().addHandler(LoguruBridge())


def _install_stdlib(include_location: bool, log_file: str | None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(RotatingFileHandler(log_file, maxBytes=50 * 1024 * 1024, backupCount=5))
    root = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(SyncLogFormatter(include_location=include_location))
        root.addHandler(handler)


def setup_json_logging(
    level: str = "INFO",
    include_location: bool = True,
    use_loguru: bool = True,
    log_file: str | None = None,
    max_file_size: str = "50 MB",
    retention: str = "14 days",
) -> None:
    """Route all logging to structured JSON on stderr (and ``log_file`` if set).

    With ``use_loguru`` the stdlib root logger forwards into loguru sinks;
    otherwise a plain stdlib handler renders records with ``SyncLogFormatter``.
    ``max_file_size`` and ``retention`` apply to the loguru file sink only.
    """
    level = level.upper()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, level, logging.INFO))

    if use_loguru:
        _install_loguru(level, log_file, max_file_size, retention)
    else:
        _install_stdlib(include_location, log_file)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    backend = "loguru" if use_loguru else "stdlib"
    logging.getLogger(__name__).info(
        "json_logging_initialized",
        extra={"level": level, "log_file": log_file, "backend": backend},
    )


def generate_correlation_id() -> str:
    """Short random id that ties together the log lines of one sync run."""
    return uuid.uuid4().hex[:12]


__all__ = [
    "LoguruBridge",
    "SyncLogFormatter",
    "generate_correlation_id",
    "setup_json_logging",
]

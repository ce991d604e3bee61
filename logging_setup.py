"""
Logging System
Human-readable or JSON console output + optional daily rotating JSON files
"""

import json
import logging
import logging.handlers
import traceback
from datetime import UTC, datetime
from pathlib import Path

from config.settings import get_settings

# LogRecord attributes that are not user supplied `extra` fields
_RESERVED_ATTRS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "exc_info",
    "exc_text",
    "stack_info",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "message",
    "asctime",
}

CONSOLE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d - %(message)s"
)


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    One object per line, `extra` fields nested under "extra"
    """

    def __init__(self, include_trace: bool = True):
        super().__init__()
        self.include_trace = include_trace

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "timestamp_iso": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.process:
            log_entry["process_id"] = record.process
        if record.thread:
            log_entry["thread_id"] = record.thread

        if record.exc_info and self.include_trace:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        extra_fields = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS
        }
        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(
            log_entry, ensure_ascii=False, separators=(",", ":"), default=str
        )


class DailyRotatingJsonHandler(logging.handlers.TimedRotatingFileHandler):
    """
    Daily rotating JSON log handler with retention management
    Rotated files are named <stem>-YYYY-MM-DD.json
    """

    def __init__(
        self, base_filename: str, retention_days: int = 30, encoding: str = "utf-8"
    ):
        log_dir = Path(base_filename).parent
        log_dir.mkdir(parents=True, exist_ok=True)

        super().__init__(
            filename=base_filename,
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding=encoding,
            utc=True,
        )

        self.retention_days = retention_days

    def namer(self, default_name: str) -> str:
        # default_name is "<base>.<suffix>", the suffix being the date of the
        # period that just ended
        prefix = self.baseFilename + "."
        if not default_name.startswith(prefix):
            return default_name
        date_str = default_name[len(prefix) :]
        base_path = Path(self.baseFilename)
        return str(base_path.parent / f"{base_path.stem}-{date_str}.json")


def setup_advanced_logger(
    name: str | None = None, level: str | None = None
) -> logging.Logger:
    """
    Configure a logger once from the logging settings

    Features:
    - Console output, readable or JSON
    - Optional JSON file with daily rotation and retention
    - Separate JSON file for warnings and errors

    Args:
        name: Logger name (None configures the root logger, so every
              module logger propagates to it)
        level: Log level (DEBUG, INFO, WARNING, ERROR), defaults to settings

    Returns:
        Configured logger instance
    """
    settings = get_settings().logging

    if level is None:
        level = settings.log_level.value
    log_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    if settings.json_console:
        console_handler.setFormatter(JsonFormatter(include_trace=True))
    else:
        console_handler.setFormatter(
            logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
    logger.addHandler(console_handler)

    if settings.log_to_file:
        log_dir = settings.log_directory

        json_handler = DailyRotatingJsonHandler(
            base_filename=str(log_dir / "dumbometrics.json"),
            retention_days=settings.log_retention_days,
        )
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(JsonFormatter(include_trace=True))
        logger.addHandler(json_handler)

        error_handler = DailyRotatingJsonHandler(
            base_filename=str(log_dir / "errors.json"),
            retention_days=settings.log_retention_days,
        )
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(JsonFormatter(include_trace=True))
        logger.addHandler(error_handler)

    logger.debug(
        "Logging configured",
        extra={
            "log_level": level,
            "json_console": settings.json_console,
            "log_to_file": settings.log_to_file,
            "retention_days": settings.log_retention_days,
        },
    )

    return logger


"""Logging configuration and utilities."""

import sys
import logging
import logging.handlers
import structlog
from pathlib import Path
from datetime import datetime, timezone
import json
from typing import Optional, Union


# LogRecord attributes that never end up in the "attributes" block
_RECORD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


def setup_logging(
    debug: bool = False,
    log_file: bool = True,
    log_level: str = "INFO",
    log_format: str = "json",
    log_dir: Optional[Union[str, Path]] = None,
    session_id: Optional[str] = None,
    file_rotation_mb: int = 10,
    file_backup_count: int = 7,
) -> Optional[Path]:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug logging (overrides log_level)
        log_file: Whether to log to file in addition to console
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, dev)
        log_dir: Directory for log files
        session_id: Optional session ID for session-specific logs
        file_rotation_mb: File rotation size in MB
        file_backup_count: Number of backup files to keep

    Returns:
        Path of the log file, or None when file logging is disabled.
    """
    if debug:
        log_level = "DEBUG"
    log_level = log_level.upper()

    log_path = None
    if log_file:
        log_dir = Path(log_dir or "./logs")
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        if session_id:
            log_filename = f"session_{session_id}_{timestamp}.log"
        else:
            log_filename = f"sohbet_{timestamp}.log"
        log_path = log_dir / log_filename

    dev_console = log_format == "dev" or (sys.stderr.isatty() and log_format != "json")

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if dev_console:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # The chat REPL owns stdout, so console logs always go to stderr
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level))
    if dev_console:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    else:
        console_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(console_handler)

    if log_path is not None:
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=file_rotation_mb * 1024 * 1024,
            backupCount=file_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(getattr(logging, log_level))
        # File logs are always JSON
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, log_level))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if log_path is not None:
        structlog.get_logger().info(
            "Logging configured",
            log_file=str(log_path),
            log_level=log_level,
            log_format=log_format,
        )

    return log_path


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logs."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        try:
            log_dict = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
                .isoformat()
                .replace("+00:00", "Z"),
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }

            if record.exc_info:
                log_dict["exception"] = {
                    "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                    "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                    "traceback": self.formatException(record.exc_info),
                }

            if self.include_extra:
                extra_attrs = {
                    key: value
                    for key, value in record.__dict__.items()
                    if key not in _RECORD_FIELDS
                    and key not in log_dict
                    and not key.startswith("_")
                }
                if extra_attrs:
                    log_dict["attributes"] = extra_attrs

            return json.dumps(
                log_dict, ensure_ascii=False, separators=(",", ":"), default=str
            )

        except Exception as e:
            # Fall back to a minimal record rather than losing the line
            return json.dumps(
                {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "level": "ERROR",
                    "logger": "JsonFormatter",
                    "message": f"Failed to format log record: {str(e)}",
                    "original_message": str(record.msg),
                }
            )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def cleanup_old_logs(
    log_dir: Optional[Union[str, Path]] = None, keep_days: int = 7
) -> int:
    """Remove log files older than ``keep_days``. Returns the number removed."""
    log_dir = Path(log_dir or "./logs")

    if not log_dir.exists():
        return 0

    logger = get_logger("logging.cleanup")
    cutoff_time = datetime.now().timestamp() - (keep_days * 24 * 60 * 60)
    removed = 0

    for log_file in log_dir.glob("*.log*"):
        try:
            mtime = log_file.stat().st_mtime
            if mtime < cutoff_time:
                log_file.unlink()
                removed += 1
                logger.info(
                    "Removed old log file",
                    file=str(log_file),
                    age_days=(datetime.now().timestamp() - mtime) / (24 * 60 * 60),
                )
        except OSError as e:
            logger.warning(
                "Failed to remove old log file", file=str(log_file), error=str(e)
            )

    return removed

"""
Logging setup for Field Estimator.

Network work happens off the request thread: the Sync thread loads company
data at startup, Timer threads push after the debounce window, and every
background lifecycle reconcile runs on a thread named after its job
("WorkOrder-3f9a2c1b", "Delete-3f9a2c1b", ...). Each line therefore carries
the thread name, which is how a gateway retry is traced back to the push or
job that caused it.

Handlers:
    console         always, at the configured level
    <app>.log       production only, rotating
    <app>_error.log production only, ERROR and above
    <app>_sync.log  production only, remote store and sync engine records

Example lines:
    2026-03-02 10:15:30 [INFO    ] [MainThread] field_estimator.app - Services initialized
    2026-03-02 10:15:33 [INFO    ] [Thread-4 (_flush)] field_estimator.services.sync_service - Push complete
    2026-03-02 10:15:34 [WARNING ] [WorkOrder-3f9a2c1b] field_estimator.core.gateway - CREATE_WORK_ORDER failed, retrying (2 left)
"""

import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


APP_LOGGER_NAME = "field_estimator"

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] [%(thread_name)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# Loggers whose records also go to the sync log
SYNC_LOGGER_PREFIXES = (
    f"{APP_LOGGER_NAME}.core.gateway",
    f"{APP_LOGGER_NAME}.services.sync_service",
)


class ThreadContextFilter(logging.Filter):
    """Stamp every record with the producing thread's name and id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.thread_name = threading.current_thread().name
        record.thread_id = threading.get_ident()
        return True


class SyncRecordFilter(logging.Filter):
    """Pass only records from the remote store gateway and the sync engine."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith(SYNC_LOGGER_PREFIXES)


def _rotating_handler(path: Path, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(
    app_name: str = APP_LOGGER_NAME,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    enable_file_logging: bool = True,
) -> logging.Logger:
    """
    Configure the application logger.

    Safe to call more than once: existing handlers are replaced, which the
    test suite relies on when it builds several apps in one process.

    Args:
        app_name: Application logger name (default: "field_estimator")
        log_level: Minimum level for console and main log file
        log_dir: Directory for log files (default: ./logs next to this file)
        enable_file_logging: Add the rotating file handlers

    Returns:
        The configured application logger
    """
    logger = logging.getLogger(app_name)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(log_level)
    console.setFormatter(formatter)
    handlers.append(console)

    if enable_file_logging:
        log_dir = log_dir or Path(__file__).parent / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        handlers.append(_rotating_handler(log_dir / f"{app_name}.log", log_level, formatter))
        handlers.append(_rotating_handler(log_dir / f"{app_name}_error.log", logging.ERROR, formatter))

        sync_handler = _rotating_handler(log_dir / f"{app_name}_sync.log", logging.DEBUG, formatter)
        sync_handler.addFilter(SyncRecordFilter())
        handlers.append(sync_handler)

    thread_filter = ThreadContextFilter()
    for handler in handlers:
        handler.addFilter(thread_filter)
        logger.addHandler(handler)

    if enable_file_logging:
        logger.info(f"File logging enabled in {log_dir}")
    logger.info(f"Logging configured at level {logging.getLevelName(log_level)}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger of the application logger, e.g. field_estimator.core.gateway."""
    if not name.startswith(APP_LOGGER_NAME):
        name = f"{APP_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def get_job_logger(estimate_id: str) -> logging.Logger:
    """Logger for background work on one estimate (first 8 id characters)."""
    return logging.getLogger(f"{APP_LOGGER_NAME}.job.{estimate_id[:8]}")


def set_thread_name(name: str) -> None:
    """Rename the current thread; the name shows up in every log line."""
    threading.current_thread().name = name

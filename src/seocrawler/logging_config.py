"""Logging setup for crawl commands and long-running queue workers.

Several workers usually share one queue database and often one log file, so
every record carries a worker tag (``%(worker)s``) naming the process that
wrote it.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(worker)s - %(name)s - %(levelname)s - %(message)s'

# Size at which the log file rotates, and rotated files kept
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers capped at WARNING
NOISY_LOGGERS = ('httpx', 'httpcore', 'asyncio', 'openai', 'anthropic')


class WorkerTagFilter(logging.Filter):
    """Stamps each record with the name of the emitting worker."""

    def __init__(self, worker: str):
        super().__init__()
        self.worker = worker

    def filter(self, record: logging.LogRecord) -> bool:
        record.worker = self.worker
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    worker_name: Optional[str] = None,
) -> None:
    """Configure root logging for one crawler process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path, rotated at LOG_FILE_MAX_BYTES
        format_string: Optional custom format string; may use %(worker)s
        worker_name: Tag for this process's records (defaults to pid-<pid>)
    """
    tag = WorkerTagFilter(worker_name or f"pid-{os.getpid()}")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
        )
    for handler in handlers:
        handler.addFilter(tag)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

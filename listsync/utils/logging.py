"""
Logging configuration for listsync.
Provides console logging and optional database logging.
"""

import logging
import os
import sys
from typing import Any, Optional

import structlog
from structlog.types import Processor


def get_log_level() -> str:
    """Get log level from environment."""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: Optional[str] = None) -> None:
    """Configure structured logging for the application."""

    # Shared processors for both console and structlog
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()),
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, (level or get_log_level()).upper(), logging.INFO))

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("gql").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


class DatabaseLogHandler(logging.Handler):
    """
    Log handler that writes records to the sync_log table, so runs can be
    inspected after the fact.
    """

    def __init__(self, max_logs: int = 1000):
        super().__init__()
        self.max_logs = max_logs

    def emit(self, record: logging.LogRecord) -> None:
        from listsync.db.database import get_db_session
        from listsync.db.models import SyncLog

        try:
            with get_db_session() as session:
                session.add(SyncLog(
                    level=record.levelname,
                    message=self.format(record),
                    sync_run_id=getattr(record, "sync_run_id", None),
                ))
                session.flush()

                count = session.query(SyncLog).count()
                if count > self.max_logs:
                    oldest = session.query(SyncLog)\
                        .order_by(SyncLog.created_at.asc(), SyncLog.id.asc())\
                        .limit(count - self.max_logs)\
                        .all()
                    for log in oldest:
                        session.delete(log)

        except Exception:
            # Logging must never break a sync
            self.handleError(record)


def init_db_logging(level: int = logging.INFO) -> DatabaseLogHandler:
    """Attach the database handler to the root logger. Call after init_db()."""
    handler = DatabaseLogHandler()
    handler.setLevel(level)
    logging.getLogger().addHandler(handler)
    return handler


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    return structlog.get_logger(name)


class SyncLogger:
    """
    Logger for sync operations.
    Binds the sync run id and direction prefix to every message.
    """

    def __init__(self, sync_run_id: Optional[str] = None, prefix: str = ""):
        self.logger = get_logger("sync")
        self.sync_run_id = sync_run_id
        self.prefix = prefix

    def _log(self, level: str, message: str, **kwargs: Any) -> None:
        log_method = getattr(self.logger, level.lower())

        if self.sync_run_id:
            structlog.contextvars.bind_contextvars(sync_run_id=self.sync_run_id)

        if self.prefix:
            message = f"[{self.prefix}] {message}"

        try:
            log_method(message, **kwargs)
        finally:
            structlog.contextvars.unbind_contextvars("sync_run_id")

    def info(self, message: str, **kwargs: Any) -> None:
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log("ERROR", message, **kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log("DEBUG", message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._log("ERROR", message, exc_info=True, **kwargs)

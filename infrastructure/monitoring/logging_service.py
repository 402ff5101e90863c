"""
Structured logging for the support chat.

Console output is human readable in debug mode and JSON otherwise; the
rotating log file is always JSON. Conversation ids passed through `extra=`
are lifted to the top level of each JSON line so one conversation can be
followed across the widget, the console and the store.
"""

import json
import logging
import logging.handlers
import time
import traceback
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Deque, Dict, Iterator, Optional

from config.app_config import AppConfig, get_config


# Attributes every LogRecord carries; anything else came in through `extra=`
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

# Third-party loggers that are noisy at DEBUG
_QUIET_LOGGERS = ("asyncio", "streamlit", "watchdog", "urllib3")

_MAX_LOG_BYTES = 10 * 1024 * 1024


class StructuredFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }

        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES}
        conversation_id = extra.pop("conversation_id", None)
        if conversation_id is not None:
            entry["conversation_id"] = conversation_id
        if extra:
            entry["extra"] = extra

        if record.exc_info and record.exc_info[0] is not None:
            error_type, error, tb = record.exc_info
            entry["exception"] = {
                "type": error_type.__name__,
                "message": str(error),
                "traceback": traceback.format_exception(error_type, error, tb),
            }

        return json.dumps(entry, ensure_ascii=False, default=str)


def setup_logging(config: Optional[AppConfig] = None) -> logging.Logger:
    """
    Configure the root logger from the logging section of the config

    Returns:
        logging.Logger: The configured root logger
    """
    config = config or get_config()
    level = getattr(logging, config.logging.level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    if config.debug:
        console_handler.setFormatter(logging.Formatter(config.logging.format))
    else:
        console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    if config.logging.enable_file_logging:
        log_file = Path(config.logging.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(log_file, maxBytes=_MAX_LOG_BYTES, backupCount=5)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_execution_time(logger: logging.Logger, operation: str, **extra_fields) -> Iterator[None]:
    """
    Log how long a block took, awaited code included

    A failing block is logged at WARNING and the exception propagates.
    """
    started = time.perf_counter()
    logger.debug(f"Starting {operation}", extra={"operation": operation, **extra_fields})

    try:
        yield
    except Exception as e:
        logger.warning(f"Failed {operation}: {e}", extra={
            "operation": operation,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "status": "error",
            "error_type": type(e).__name__,
            **extra_fields
        })
        raise

    logger.info(f"Completed {operation}", extra={
        "operation": operation,
        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
        "status": "success",
        **extra_fields
    })


def log_conversation_event(logger: logging.Logger, event_type: str, conversation_id: Optional[str], **details):
    """
    Log a conversation lifecycle event

    Args:
        logger: Logger instance
        event_type: "created", "message_added", "message_sent", "marked_read", "deleted"
        conversation_id: Conversation the event belongs to
        **details: Additional event fields
    """
    logger.info(f"Conversation {event_type}", extra={
        "event_type": "conversation_event",
        "conversation_event_type": event_type,
        "conversation_id": conversation_id,
        **details
    })


class ErrorTracker:
    """
    Logs handled errors and keeps per-context counts plus the most recent ones.

    Every failure the chat turns into a notice (failed send, failed reply,
    failed delete, broken subscription) goes through here.
    """

    def __init__(self, logger: logging.Logger, history_size: int = 50):
        self.logger = logger
        self.error_counts: Dict[str, int] = {}
        self.recent: Deque[Dict[str, Any]] = deque(maxlen=history_size)

    def track_error(self, error: Exception, context: str = "", **extra_info) -> int:
        """
        Log an error with its context

        Returns:
            How many times this error type was seen in this context
        """
        error_type = type(error).__name__
        key = f"{error_type}:{context}"
        count = self.error_counts.get(key, 0) + 1
        self.error_counts[key] = count

        self.recent.append({
            "error_type": error_type,
            "context": context,
            "message": str(error),
            "conversation_id": extra_info.get("conversation_id"),
            "at": datetime.now().isoformat(),
        })

        self.logger.error(f"Error in {context}: {error}", extra={
            "event_type": "error",
            "error_type": error_type,
            "context": context,
            "error_count": count,
            **extra_info
        }, exc_info=error)
        return count

    def count(self, context: str) -> int:
        """Errors of any type seen in a context"""
        return sum(n for key, n in self.error_counts.items() if key.split(":", 1)[1] == context)

    def reset(self) -> None:
        self.error_counts.clear()
        self.recent.clear()

    def get_error_summary(self) -> Dict[str, Any]:
        return {
            "total_errors": sum(self.error_counts.values()),
            "unique_errors": len(self.error_counts),
            "error_breakdown": dict(self.error_counts),
            "recent": list(self.recent),
        }


# Global instances
_logging_configured = False
_error_tracker: Optional[ErrorTracker] = None


def initialize_logging() -> ErrorTracker:
    """Configure logging once and create the global error tracker"""
    global _logging_configured, _error_tracker

    if not _logging_configured:
        setup_logging()
        _logging_configured = True

    if _error_tracker is None:
        _error_tracker = ErrorTracker(logging.getLogger("support_chat.errors"))

    return _error_tracker


def get_error_tracker() -> ErrorTracker:
    if _error_tracker is None:
        return initialize_logging()
    return _error_tracker

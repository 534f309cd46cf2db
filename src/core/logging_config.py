"""Centralized logging configuration with JSON structured logging support."""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union


TEXT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Record attributes promoted to top-level keys in JSON output
CONTEXT_FIELDS = ("request_id", "user_id", "deal_id", "property_id", "inquiry_id")


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, suitable for log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_data"):
            log_data["extra"] = record.extra_data

        for field_name in CONTEXT_FIELDS:
            if hasattr(record, field_name):
                log_data[field_name] = getattr(record, field_name)

        return json.dumps(log_data, default=str)


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that attaches fixed context to every message.

    Usage:
        logger = get_context_logger(__name__, deal_id=42)
        logger.info("Cancelling deal")  # record carries deal_id
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
        """Add context to log record."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        json_format: If True, use JSON structured logging.
    """
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT, DATE_FORMAT)

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        handlers=handlers,
        force=True,
    )

    # Third-party noise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)


def get_context_logger(name: str, **context: Any) -> ContextLogger:
    """
    Get a logger with context that will be included in all log messages.

    Args:
        name: Name of the logger (usually __name__).
        **context: Context key-value pairs to include in logs.

    Returns:
        ContextLogger adapter.
    """
    base_logger = logging.getLogger(name)
    return ContextLogger(base_logger, context)


def log_transition(
    logger: Union[logging.Logger, logging.LoggerAdapter],
    entity: str,
    entity_id: Any,
    from_status: Optional[str],
    to_status: str,
    **extra: Any,
) -> None:
    """
    Log a lifecycle state change with standard fields.

    Args:
        logger: Logger or ContextLogger to use.
        entity: Entity name (e.g., "deal", "property", "inquiry").
        entity_id: Primary key of the entity.
        from_status: Status before the transition (None on creation).
        to_status: Status after the transition.
        **extra: Additional context to log.
    """
    log_data = {
        "entity": entity,
        "entity_id": entity_id,
        "from_status": from_status,
        "to_status": to_status,
        **extra,
    }
    logger.info(
        f"{entity.capitalize()} {entity_id}: {from_status or '-'} -> {to_status}",
        extra={"extra_data": log_data},
    )


__all__ = [
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "log_transition",
    "JSONFormatter",
    "ContextLogger",
]

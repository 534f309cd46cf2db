"""Core utility functions."""
from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from core.exceptions import AnalyticsRecordingError
from core.logging_config import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    """Get current UTC datetime with timezone info. Always use this instead of datetime.now()."""
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware (UTC).

    SQLite stores datetimes without timezone info, so we need to make them
    aware before comparing with utcnow().
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str to Decimal without float representation noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def append_note_section(existing: Optional[str], label: str, text: Optional[str], first_prefix: str = "") -> Optional[str]:
    """
    Append a labeled section to free-text notes without overwriting them.

    Args:
        existing: Current notes (may be empty).
        label: Section label, rendered as ``--- <label> ---``.
        text: Text to append. Blank text leaves the notes unchanged.
        first_prefix: Prefix used when there are no prior notes.

    Returns:
        The combined notes.
    """
    if text is None or not text.strip():
        return existing
    if existing is None or not existing.strip():
        return f"{first_prefix}{text}"
    return f"{existing}\n\n--- {label} ---\n{text}"


def best_effort(operation: str, default: Any = None) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for operations whose failure must never reach the caller.

    Any exception raised by the wrapped function is wrapped in
    AnalyticsRecordingError, logged with its traceback and absorbed;
    ``default`` is returned instead.

    Args:
        operation: Name used in the log message.
        default: Value (or zero-argument factory) returned when the wrapped call fails.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                error = AnalyticsRecordingError(f"{operation} failed: {exc}")
                LOGGER.error(
                    str(error),
                    exc_info=exc,
                    extra={"extra_data": {"operation": operation, "error_type": type(exc).__name__}},
                )
                return default() if callable(default) else default

        return wrapper

    return decorator


__all__ = [
    "Clock",
    "utcnow",
    "ensure_aware",
    "to_decimal",
    "quantize_money",
    "append_note_section",
    "best_effort",
]

"""Core module exports."""
from __future__ import annotations

from core.config import Settings, get_settings, reload_settings
from core.db import get_session, SessionLocal, get_session_factory
from core.exceptions import (
    # Base
    BrokerageError,
    # Lifecycle
    NotFoundError,
    InvalidStateError,
    ConflictError,
    ValidationError,
    # Analytics
    AnalyticsRecordingError,
)
from core.logging_config import (
    setup_logging,
    get_logger,
    get_context_logger,
    log_transition,
    JSONFormatter,
    ContextLogger,
)
from core.models import (
    Base,
    Agent,
    Property,
    Inquiry,
    Deal,
    PropertyView,
    PropertyStatus,
    InquiryStatus,
    DealStatus,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "reload_settings",
    # Database
    "get_session",
    "get_session_factory",
    "SessionLocal",
    "Base",
    # Models
    "Agent",
    "Property",
    "Inquiry",
    "Deal",
    "PropertyView",
    "PropertyStatus",
    "InquiryStatus",
    "DealStatus",
    # Exceptions
    "BrokerageError",
    "NotFoundError",
    "InvalidStateError",
    "ConflictError",
    "ValidationError",
    "AnalyticsRecordingError",
    # Logging
    "setup_logging",
    "get_logger",
    "get_context_logger",
    "log_transition",
    "JSONFormatter",
    "ContextLogger",
]

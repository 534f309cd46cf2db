"""Custom exceptions for the brokerage engine."""
from __future__ import annotations


class BrokerageError(Exception):
    """Base exception for all application errors."""

    pass


# =============================================================================
# Lifecycle Errors
# =============================================================================


class NotFoundError(BrokerageError):
    """Raised when a deal, property, inquiry or agent id does not resolve."""

    def __init__(self, entity: str, entity_id: object) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class InvalidStateError(BrokerageError):
    """Raised when a transition is illegal from the current state."""

    pass


class ConflictError(BrokerageError):
    """Raised when a uniqueness invariant would be violated."""

    pass


class ValidationError(BrokerageError):
    """Raised when a business rule on input values fails."""

    pass


# =============================================================================
# Analytics Errors
# =============================================================================


class AnalyticsRecordingError(BrokerageError):
    """
    Failure inside view recording or ranking.

    Internal only: logged and absorbed at the best-effort boundary,
    never returned to the caller of the triggering operation.
    """

    pass


__all__ = [
    "BrokerageError",
    "NotFoundError",
    "InvalidStateError",
    "ConflictError",
    "ValidationError",
    "AnalyticsRecordingError",
]

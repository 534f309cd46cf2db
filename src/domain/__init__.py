"""Domain layer for brokerage business logic.

This module provides a clean separation between business logic and
infrastructure (CLI, API, etc.). All lifecycle operations go through
the domain services, each bound to the caller's database session.
"""
from __future__ import annotations

from .analytics import CurrentUserProvider, PropertyViewStats, ViewAnalyticsService
from .deals import DealDetail, DealListResult, DealService, DealStatistics, DealSummary
from .inquiries import InquiryService
from .properties import PropertyService

__all__ = [
    # Deal Service
    "DealService",
    "DealSummary",
    "DealDetail",
    "DealListResult",
    "DealStatistics",
    # Property Service
    "PropertyService",
    # Inquiry Service
    "InquiryService",
    # View Analytics
    "ViewAnalyticsService",
    "PropertyViewStats",
    "CurrentUserProvider",
]

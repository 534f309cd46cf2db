"""API route modules."""
from __future__ import annotations

from . import (
    analytics,
    deals,
    health,
    inquiries,
    properties,
)

__all__ = [
    "analytics",
    "deals",
    "health",
    "inquiries",
    "properties",
]

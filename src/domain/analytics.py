"""View analytics - deduplicated page-view recording and most-viewed ranking.

Recording is best-effort: a failed dedup check or insert is logged as an
AnalyticsRecordingError and never reaches the page that triggered it. This
is the opposite of the deal lifecycle, where every error is returned to the
caller.

Known limitation: the dedup check and the insert are two statements, so two
requests from the same session racing inside the window can both insert.
A lost or doubled view is acceptable for popularity counts.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from core.config import get_settings
from core.logging_config import get_logger
from core.models import Property, PropertyView
from core.utils import Clock, best_effort, ensure_aware, utcnow

LOGGER = get_logger(__name__)
SETTINGS = get_settings()


class CurrentUserProvider(Protocol):
    """Supplies the caller's id, used as the session key when none is given."""

    def current_user_id(self) -> Optional[str]:
        ...


@dataclass
class PropertyViewStats:
    """Ranking row for one property."""

    property_id: int
    property_title: str
    property_city: Optional[str]
    view_count: int
    last_viewed_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "property_id": self.property_id,
            "property_title": self.property_title,
            "property_city": self.property_city,
            "view_count": self.view_count,
            "last_viewed_at": self.last_viewed_at.isoformat() if self.last_viewed_at else None,
        }


class ViewAnalyticsService:
    """Service for recording and aggregating property page views."""

    def __init__(
        self,
        session: Session,
        clock: Clock = utcnow,
        dedup_window: Optional[timedelta] = None,
        user_provider: Optional[CurrentUserProvider] = None,
    ) -> None:
        self.session = session
        self.clock = clock
        self.dedup_window = dedup_window or timedelta(minutes=SETTINGS.view_dedup_window_minutes)
        self.user_provider = user_provider

    def _resolve_session_id(self, session_id: Optional[str]) -> Optional[str]:
        if session_id:
            return session_id
        if self.user_provider is not None:
            return self.user_provider.current_user_id()
        return None

    def has_recent_view(self, property_id: int, session_id: str, since: datetime) -> bool:
        """Whether (property, session) has a view strictly newer than ``since``."""
        return self.session.scalar(
            select(PropertyView.id)
            .where(
                PropertyView.property_id == property_id,
                PropertyView.session_id == session_id,
                PropertyView.viewed_at > since,
            )
            .limit(1)
        ) is not None

    def record_view(
        self,
        property_id: int,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """
        Store a view unless the same session viewed the property within the window.

        Without a session id (and no current user to fall back on) there is
        nothing to dedupe against, so every call stores a row.

        The check and the insert run inside a SAVEPOINT, so a failure rolls
        back only the view and leaves the caller's session usable.

        Raises whatever the database raises; use record_property_view for the
        non-raising entry point.

        Returns:
            True if a row was stored, False if it was a duplicate.
        """
        now = self.clock()
        resolved_session = self._resolve_session_id(session_id)

        with self.session.begin_nested():
            if resolved_session is not None:
                if self.has_recent_view(property_id, resolved_session, now - self.dedup_window):
                    LOGGER.debug(f"Duplicate view suppressed for property {property_id}")
                    return False

            self.session.add(
                PropertyView(
                    property_id=property_id,
                    session_id=resolved_session,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    viewed_at=now,
                )
            )
            self.session.flush()
        LOGGER.info(
            f"Recorded property view for property {property_id}",
            extra={"extra_data": {"property_id": property_id, "anonymous": resolved_session is None}},
        )
        return True

    @best_effort("record_property_view", default=False)
    def record_property_view(
        self,
        property_id: int,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> bool:
        """Best-effort record_view: failures are logged and reported as False."""
        return self.record_view(property_id, session_id, ip_address, user_agent)

    def most_viewed(
        self,
        top_count: int = 10,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[PropertyViewStats]:
        """
        Rank properties by view count within optional inclusive date bounds.

        Ties go to the property viewed most recently, then to the lower id.
        Title and city come from the property row at query time.
        """
        if top_count <= 0:
            return []

        view_count = func.count(PropertyView.id).label("view_count")
        last_viewed = func.max(PropertyView.viewed_at).label("last_viewed_at")

        query = (
            select(
                PropertyView.property_id,
                Property.title,
                Property.city,
                view_count,
                last_viewed,
            )
            .join(Property, Property.id == PropertyView.property_id)
            .where(Property.is_deleted.is_(False))
        )
        if from_date is not None:
            query = query.where(PropertyView.viewed_at >= from_date)
        if to_date is not None:
            query = query.where(PropertyView.viewed_at <= to_date)

        rows = self.session.execute(
            query.group_by(PropertyView.property_id, Property.title, Property.city)
            .order_by(view_count.desc(), last_viewed.desc(), PropertyView.property_id.asc())
            .limit(top_count)
        ).all()

        return [
            PropertyViewStats(
                property_id=row.property_id,
                property_title=row.title,
                property_city=row.city,
                view_count=row.view_count,
                last_viewed_at=ensure_aware(row.last_viewed_at),
            )
            for row in rows
        ]

    @best_effort("get_most_viewed_properties", default=list)
    def get_most_viewed_properties(
        self,
        top_count: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> List[PropertyViewStats]:
        """Best-effort most_viewed: failures are logged and yield an empty list."""
        return self.most_viewed(top_count or SETTINGS.most_viewed_default_top, from_date, to_date)

    def view_count(
        self,
        property_id: int,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> int:
        """Number of stored views for one property."""
        query = select(func.count(PropertyView.id)).where(PropertyView.property_id == property_id)
        if from_date is not None:
            query = query.where(PropertyView.viewed_at >= from_date)
        if to_date is not None:
            query = query.where(PropertyView.viewed_at <= to_date)
        return self.session.scalar(query) or 0


__all__ = ["ViewAnalyticsService", "PropertyViewStats", "CurrentUserProvider"]

"""Analytics routes: view recording, most-viewed ranking and per-property counts."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.deps import HeaderUserProvider, get_db, get_readonly_db, get_user_provider
from domain.analytics import ViewAnalyticsService

router = APIRouter()


class ViewRecord(BaseModel):
    session_id: Optional[str] = Field(None, max_length=100)


@router.post("/properties/{property_id}/views")
async def record_property_view(
    property_id: int,
    request: Request,
    body: Optional[ViewRecord] = None,
    db: Session = Depends(get_db),
    user_provider: HeaderUserProvider = Depends(get_user_provider),
) -> Dict[str, Any]:
    """
    Record a view of a property page.

    Never fails the request: ``recorded`` is False for a duplicate inside
    the dedup window and for a recording failure alike. The two are told
    apart in the logs (debug for a duplicate, error for a failure).
    """
    service = ViewAnalyticsService(db, user_provider=user_provider)
    recorded = service.record_property_view(
        property_id,
        session_id=body.session_id if body else None,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return {"property_id": property_id, "recorded": recorded}


@router.get("/most-viewed")
async def most_viewed_properties(
    top: Optional[int] = Query(None, ge=1, le=100, description="Number of properties"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_readonly_db),
) -> List[Dict[str, Any]]:
    """Most viewed properties. An analytics failure yields an empty list, not an error."""
    stats = ViewAnalyticsService(db).get_most_viewed_properties(top, from_date, to_date)
    return [s.to_dict() for s in stats]


@router.get("/properties/{property_id}/views")
async def property_view_count(
    property_id: int,
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    count = ViewAnalyticsService(db).view_count(property_id, from_date, to_date)
    return {"property_id": property_id, "view_count": count}

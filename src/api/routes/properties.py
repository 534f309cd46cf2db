"""Property routes: listing entry points and the public detail page."""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.deps import HeaderUserProvider, get_db, get_readonly_db, get_user_provider
from core.db import get_session_factory
from core.logging_config import get_logger
from core.utils import best_effort
from domain.analytics import ViewAnalyticsService
from domain.properties import PropertyService

router = APIRouter()
LOGGER = get_logger(__name__)

SESSION_COOKIE = "session_id"


class PropertyCreate(BaseModel):
    """Request body for creating a listing."""

    title: str = Field(..., min_length=1, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(..., ge=0)
    agent_id: Optional[int] = None
    publish: bool = Field(False, description="Publish immediately")


@best_effort("record_view_in_background", default=False)
def record_view_in_background(
    property_id: int,
    session_id: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> bool:
    """Record a view in its own session after the response is prepared."""
    session_factory = get_session_factory()
    with session_factory() as session:
        return ViewAnalyticsService(session).record_property_view(
            property_id, session_id, ip_address, user_agent
        )


@router.post("", status_code=201)
async def create_property(
    body: PropertyCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    prop = PropertyService(db).create_property(
        title=body.title,
        price=body.price,
        city=body.city,
        agent_id=body.agent_id,
        publish=body.publish,
    )
    return prop.to_dict()


@router.get("/{property_id}")
async def get_property(
    property_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_readonly_db),
    user_provider: HeaderUserProvider = Depends(get_user_provider),
) -> Dict[str, Any]:
    """Property detail page. Schedules a best-effort view record."""
    prop = PropertyService(db).get_property(property_id)
    payload = prop.to_dict()

    session_id = request.cookies.get(SESSION_COOKIE) or user_provider.current_user_id()
    background_tasks.add_task(
        record_view_in_background,
        property_id,
        session_id,
        request.client.host if request.client else None,
        request.headers.get("user-agent"),
    )
    return payload


@router.post("/{property_id}/publish")
async def publish_property(
    property_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return PropertyService(db).publish_property(property_id).to_dict()


@router.delete("/{property_id}")
async def delete_property(
    property_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Soft-delete a listing that has no pending or completed deal."""
    prop = PropertyService(db).soft_delete_property(property_id)
    return {"status": "deleted", "property_id": prop.id}

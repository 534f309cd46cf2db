"""Deal lifecycle routes."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from api.deps import get_db, get_readonly_db
from core.logging_config import get_logger
from domain.deals import DealService

router = APIRouter()
LOGGER = get_logger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================


class DealCreate(BaseModel):
    """Request body for opening a deal."""

    property_id: int = Field(..., description="Property being sold")
    agent_id: int = Field(..., description="Agent handling the sale")
    inquiry_id: Optional[int] = Field(None, description="Inquiry the deal came from")
    buyer_name: str = Field(..., min_length=1, max_length=200)
    buyer_email: EmailStr
    buyer_phone: Optional[str] = Field(None, max_length=50)
    sale_price: Decimal = Field(..., gt=0, description="Agreed sale price")
    commission_rate: Optional[Decimal] = Field(None, ge=0, le=100, description="Commission percent")
    notes: Optional[str] = Field(None, max_length=2000)


class DealUpdate(BaseModel):
    """Request body for correcting a pending deal."""

    buyer_name: str = Field(..., min_length=1, max_length=200)
    buyer_email: EmailStr
    buyer_phone: Optional[str] = Field(None, max_length=50)
    sale_price: Decimal = Field(..., gt=0)
    commission_rate: Decimal = Field(..., ge=0, le=100)
    notes: Optional[str] = Field(None, max_length=2000)


class DealComplete(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class DealCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000, description="Appended to the deal notes")


# =============================================================================
# Routes
# =============================================================================


@router.post("", status_code=201)
async def create_deal(
    body: DealCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Open a pending deal; the property goes under offer."""
    service = DealService(db)
    deal = service.create_deal(
        property_id=body.property_id,
        agent_id=body.agent_id,
        buyer_name=body.buyer_name,
        buyer_email=str(body.buyer_email),
        sale_price=body.sale_price,
        commission_rate=body.commission_rate,
        inquiry_id=body.inquiry_id,
        buyer_phone=body.buyer_phone,
        notes=body.notes,
    )
    return service.get_deal(deal.id).to_dict()


@router.get("")
async def list_deals(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="PENDING, COMPLETED or CANCELLED"),
    agent_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, description="Buyer name or property title"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    """List deals newest first."""
    result = DealService(db).list_deals(
        page=page,
        page_size=page_size,
        status=status,
        agent_id=agent_id,
        search=search,
        from_date=from_date,
        to_date=to_date,
    )
    return result.to_dict()


@router.get("/statistics")
async def get_deal_statistics(
    agent_id: Optional[int] = Query(None),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    """Deal counts and completed-sale totals."""
    return DealService(db).get_statistics(agent_id, from_date, to_date).to_dict()


@router.get("/{deal_id}")
async def get_deal(
    deal_id: int,
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    return DealService(db).get_deal(deal_id).to_dict()


@router.put("/{deal_id}")
async def update_deal(
    deal_id: int,
    body: DealUpdate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Correct a pending deal; commission is recomputed."""
    service = DealService(db)
    service.update_deal(
        deal_id,
        buyer_name=body.buyer_name,
        buyer_email=str(body.buyer_email),
        sale_price=body.sale_price,
        commission_rate=body.commission_rate,
        buyer_phone=body.buyer_phone,
        notes=body.notes,
    )
    return service.get_deal(deal_id).to_dict()


@router.post("/{deal_id}/complete")
async def complete_deal(
    deal_id: int,
    body: Optional[DealComplete] = None,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Mark a pending deal completed; the property is sold."""
    service = DealService(db)
    service.complete_deal(deal_id, notes=body.notes if body else None)
    return service.get_deal(deal_id).to_dict()


@router.post("/{deal_id}/cancel")
async def cancel_deal(
    deal_id: int,
    body: Optional[DealCancel] = None,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Cancel a deal; the property goes back on the market."""
    service = DealService(db)
    service.cancel_deal(deal_id, reason=body.reason if body else None)
    return service.get_deal(deal_id).to_dict()

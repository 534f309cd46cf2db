"""Inquiry routes."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from api.deps import get_db, get_readonly_db
from domain.inquiries import InquiryService

router = APIRouter()


class InquiryCreate(BaseModel):
    """Request body for a buyer contact request."""

    property_id: Optional[int] = None
    visitor_name: str = Field(..., min_length=1, max_length=200)
    visitor_email: EmailStr
    visitor_phone: Optional[str] = Field(None, max_length=50)
    message: Optional[str] = Field(None, max_length=5000)


class InquiryAssign(BaseModel):
    agent_id: int


@router.post("", status_code=201)
async def create_inquiry(
    body: InquiryCreate,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    inquiry = InquiryService(db).create_inquiry(
        visitor_name=body.visitor_name,
        visitor_email=str(body.visitor_email),
        property_id=body.property_id,
        visitor_phone=body.visitor_phone,
        message=body.message,
    )
    return inquiry.to_dict()


@router.get("/{inquiry_id}")
async def get_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_readonly_db),
) -> Dict[str, Any]:
    return InquiryService(db).get_inquiry(inquiry_id).to_dict()


@router.post("/{inquiry_id}/assign")
async def assign_inquiry(
    inquiry_id: int,
    body: InquiryAssign,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return InquiryService(db).assign_inquiry(inquiry_id, body.agent_id).to_dict()


@router.post("/{inquiry_id}/close")
async def close_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Administrative close."""
    return InquiryService(db).close_inquiry(inquiry_id).to_dict()


@router.post("/{inquiry_id}/reopen")
async def reopen_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return InquiryService(db).reopen_inquiry(inquiry_id).to_dict()

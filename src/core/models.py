"""SQLAlchemy ORM models for the brokerage engine."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
import enum

from core.db import Base
from core.exceptions import InvalidStateError
from core.utils import quantize_money, utcnow


# =============================================================================
# Enums
# =============================================================================


class PropertyStatus(str, enum.Enum):
    """Marketing status of a listing."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    UNDER_OFFER = "UNDER_OFFER"    # Pending deal attached
    SOLD = "SOLD"                  # Deal completed
    ARCHIVED = "ARCHIVED"


class InquiryStatus(str, enum.Enum):
    """Buyer inquiry status."""
    NEW = "NEW"
    ASSIGNED = "ASSIGNED"
    CLOSED = "CLOSED"


class DealStatus(str, enum.Enum):
    """Deal status. COMPLETED and CANCELLED are terminal."""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Property statuses that require a closing deal link
SALE_STATUSES = {PropertyStatus.UNDER_OFFER.value, PropertyStatus.SOLD.value}


# =============================================================================
# Agent Model
# =============================================================================


class Agent(Base):
    """A brokerage agent who owns deals and handles inquiries."""
    __tablename__ = "agent"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
        }


# =============================================================================
# Property Model
# =============================================================================


class Property(Base):
    """
    A listing and its marketing status.

    Once a deal is attached, ``status`` and ``closed_deal_id`` change only
    through the deal lifecycle via mark_under_offer / mark_sold /
    revert_to_published.
    """
    __tablename__ = "property"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(
        String(20), default=PropertyStatus.DRAFT.value, nullable=False, index=True
    )

    agent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("agent.id"), nullable=True)
    # No FK: deal.property_id already points here
    closed_deal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Soft delete
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    agent: Mapped[Optional["Agent"]] = relationship("Agent")
    deals: Mapped[list["Deal"]] = relationship(
        "Deal", back_populates="property", foreign_keys="Deal.property_id"
    )

    def can_be_published(self) -> bool:
        return (
            bool(self.title and self.title.strip())
            and self.price is not None
            and self.price > 0
            and not self.is_deleted
            and self.closed_deal_id is None
        )

    def publish(self, at: Optional[datetime] = None) -> None:
        if self.status == PropertyStatus.PUBLISHED.value:
            return
        if self.status != PropertyStatus.DRAFT.value or not self.can_be_published():
            raise InvalidStateError("Property cannot be published in its current state")
        self.status = PropertyStatus.PUBLISHED.value
        self.updated_at = at or utcnow()

    def mark_under_offer(self, deal_id: int, at: Optional[datetime] = None) -> None:
        """Attach a pending deal. Repeating the call for the same deal is a no-op."""
        if self.status == PropertyStatus.UNDER_OFFER.value and self.closed_deal_id == deal_id:
            return
        self.status = PropertyStatus.UNDER_OFFER.value
        self.closed_deal_id = deal_id
        self.updated_at = at or utcnow()

    def mark_sold(self, deal_id: Optional[int] = None, at: Optional[datetime] = None) -> None:
        """Record the sale. ``deal_id`` defaults to the already linked deal."""
        linked = deal_id if deal_id is not None else self.closed_deal_id
        if self.status == PropertyStatus.SOLD.value and self.closed_deal_id == linked:
            return
        self.status = PropertyStatus.SOLD.value
        self.closed_deal_id = linked
        self.updated_at = at or utcnow()

    def revert_to_published(self, at: Optional[datetime] = None) -> None:
        """Drop the deal link and return the listing to the market."""
        if self.status == PropertyStatus.PUBLISHED.value and self.closed_deal_id is None:
            return
        self.status = PropertyStatus.PUBLISHED.value
        self.closed_deal_id = None
        self.updated_at = at or utcnow()

    def soft_delete(self, at: Optional[datetime] = None) -> None:
        now = at or utcnow()
        self.is_deleted = True
        self.deleted_at = now
        self.updated_at = now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "city": self.city,
            "price": float(self.price) if self.price is not None else None,
            "status": self.status,
            "agent_id": self.agent_id,
            "closed_deal_id": self.closed_deal_id,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# =============================================================================
# Inquiry Model
# =============================================================================


class Inquiry(Base):
    """A buyer's expressed interest in a property."""
    __tablename__ = "inquiry"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("property.id"), nullable=True, index=True
    )

    visitor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    visitor_email: Mapped[str] = mapped_column(String(255), nullable=False)
    visitor_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), default=InquiryStatus.NEW.value, nullable=False, index=True
    )
    # Restored by reopen()
    status_before_close: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    assigned_agent_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("agent.id"), nullable=True, index=True
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    related_deal_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    property: Mapped[Optional["Property"]] = relationship("Property")
    assigned_agent: Mapped[Optional["Agent"]] = relationship("Agent")

    def assign_to(self, agent_id: int, at: Optional[datetime] = None) -> None:
        if self.status == InquiryStatus.CLOSED.value:
            raise InvalidStateError("Cannot assign closed inquiries")
        self.assigned_agent_id = agent_id
        self.status = InquiryStatus.ASSIGNED.value
        self.updated_at = at or utcnow()

    def close(self, deal_id: Optional[int] = None, at: Optional[datetime] = None) -> None:
        now = at or utcnow()
        if self.status != InquiryStatus.CLOSED.value:
            self.status_before_close = self.status
        self.status = InquiryStatus.CLOSED.value
        self.closed_at = now
        self.related_deal_id = deal_id
        self.updated_at = now

    def reopen(self, at: Optional[datetime] = None) -> None:
        if self.status != InquiryStatus.CLOSED.value:
            raise InvalidStateError("Only closed inquiries can be reopened")

        restored = self.status_before_close
        if restored not in (InquiryStatus.NEW.value, InquiryStatus.ASSIGNED.value):
            restored = (
                InquiryStatus.ASSIGNED.value
                if self.assigned_agent_id is not None
                else InquiryStatus.NEW.value
            )
        self.status = restored
        self.status_before_close = None
        self.closed_at = None
        self.related_deal_id = None
        self.updated_at = at or utcnow()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "visitor_name": self.visitor_name,
            "visitor_email": self.visitor_email,
            "visitor_phone": self.visitor_phone,
            "message": self.message,
            "status": self.status,
            "assigned_agent_id": self.assigned_agent_id,
            "related_deal_id": self.related_deal_id,
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# =============================================================================
# Deal Model
# =============================================================================


class Deal(Base):
    """
    A negotiated sale linking a property, an agent and optionally an inquiry.

    At most one non-cancelled deal may exist per property; the partial
    unique index backs up the check done in DealService.create_deal.
    """
    __tablename__ = "deal"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)
    inquiry_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inquiry.id"), nullable=True)
    agent_id: Mapped[int] = mapped_column(ForeignKey("agent.id"), nullable=False, index=True)

    # Financials
    sale_price: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    commission_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)

    # Buyer
    buyer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    buyer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=DealStatus.PENDING.value, nullable=False, index=True
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    property: Mapped["Property"] = relationship(
        "Property", back_populates="deals", foreign_keys=[property_id]
    )
    inquiry: Mapped[Optional["Inquiry"]] = relationship("Inquiry")
    agent: Mapped["Agent"] = relationship("Agent")

    __table_args__ = (
        Index(
            "uq_deal_active_property",
            "property_id",
            unique=True,
            sqlite_where=text("status != 'CANCELLED'"),
            postgresql_where=text("status != 'CANCELLED'"),
        ),
        Index("ix_deal_agent_closed", "agent_id", "closed_at"),
    )

    def calculate_commission(self) -> None:
        """Derive commission_amount from sale_price and commission_rate."""
        self.commission_amount = quantize_money(
            Decimal(self.sale_price) * Decimal(self.commission_rate) / Decimal(100)
        )

    def complete(self, at: Optional[datetime] = None) -> None:
        if self.status != DealStatus.PENDING.value:
            raise InvalidStateError("Only pending deals can be completed")
        now = at or utcnow()
        self.status = DealStatus.COMPLETED.value
        self.closed_at = now
        self.updated_at = now

    def cancel(self, at: Optional[datetime] = None) -> None:
        if self.status == DealStatus.COMPLETED.value:
            raise InvalidStateError("Completed deals cannot be cancelled")
        if self.status == DealStatus.CANCELLED.value:
            raise InvalidStateError("Deal is already cancelled")
        self.status = DealStatus.CANCELLED.value
        self.updated_at = at or utcnow()


# =============================================================================
# PropertyView Model
# =============================================================================


class PropertyView(Base):
    """One recorded visit to a property page. Append-only."""
    __tablename__ = "property_view"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("property.id"), nullable=False, index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    property: Mapped["Property"] = relationship("Property")

    __table_args__ = (
        Index("ix_property_view_property_viewed", "property_id", "viewed_at"),
        Index("ix_property_view_dedup", "property_id", "session_id", "viewed_at"),
    )

"""Deal domain service - the sale lifecycle and its effect on properties and inquiries.

Deal states:
    PENDING → COMPLETED
    PENDING → CANCELLED

Every transition mutates the deal, its property and (when linked) its
inquiry through the same Session and flushes once. Committing is left to the
caller's unit of work (core.db.get_session / api.deps.get_db), so the three
records are persisted together or not at all.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from core.config import get_settings
from core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from core.logging_config import get_context_logger, log_transition
from core.models import (
    Agent,
    Deal,
    DealStatus,
    Inquiry,
    InquiryStatus,
    Property,
    PropertyStatus,
)
from core.utils import Clock, append_note_section, quantize_money, to_decimal, utcnow

SETTINGS = get_settings()

Number = Union[Decimal, float, int, str]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


@dataclass
class DealSummary:
    """List row for a deal."""

    id: int
    property_id: int
    property_title: str
    property_city: Optional[str]
    buyer_name: str
    buyer_email: Optional[str]
    agent_id: int
    agent_name: str
    sale_price: Decimal
    commission_amount: Optional[Decimal]
    status: str
    created_at: Optional[datetime]
    closed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "property_id": self.property_id,
            "property_title": self.property_title,
            "property_city": self.property_city,
            "buyer_name": self.buyer_name,
            "buyer_email": self.buyer_email,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "sale_price": _money(self.sale_price),
            "commission_amount": _money(self.commission_amount),
            "status": self.status,
            "created_at": _iso(self.created_at),
            "closed_at": _iso(self.closed_at),
        }


@dataclass
class DealDetail(DealSummary):
    """Full deal record including buyer contact, inquiry link and notes."""

    buyer_phone: Optional[str] = None
    commission_rate: Optional[Decimal] = None
    inquiry_id: Optional[int] = None
    inquiry_visitor_name: Optional[str] = None
    agent_email: Optional[str] = None
    notes: Optional[str] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        base = super().to_dict()
        base.update({
            "buyer_phone": self.buyer_phone,
            "commission_rate": _money(self.commission_rate),
            "inquiry_id": self.inquiry_id,
            "inquiry_visitor_name": self.inquiry_visitor_name,
            "agent_email": self.agent_email,
            "notes": self.notes,
            "updated_at": _iso(self.updated_at),
        })
        return base


@dataclass
class DealListResult:
    """One page of deals."""

    items: List[DealSummary] = field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 20

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total_count": self.total_count,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


@dataclass
class DealStatistics:
    """Aggregate deal figures. Money totals cover completed deals only."""

    total_deals: int = 0
    pending_deals: int = 0
    completed_deals: int = 0
    cancelled_deals: int = 0
    total_revenue: Decimal = Decimal("0")
    total_commission: Decimal = Decimal("0")
    average_sale_price: Decimal = Decimal("0")
    average_commission: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_deals": self.total_deals,
            "pending_deals": self.pending_deals,
            "completed_deals": self.completed_deals,
            "cancelled_deals": self.cancelled_deals,
            "total_revenue": float(self.total_revenue),
            "total_commission": float(self.total_commission),
            "average_sale_price": float(self.average_sale_price),
            "average_commission": float(self.average_commission),
        }


def _validate_amounts(sale_price: Decimal, commission_rate: Decimal) -> None:
    if sale_price <= 0:
        raise ValidationError("Sale price must be greater than 0")
    if commission_rate < 0 or commission_rate > 100:
        raise ValidationError("Commission rate must be between 0 and 100")


class DealService:
    """Service for deal lifecycle operations."""

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        """
        Args:
            session: Unit of work shared by every write of a transition.
            clock: Source of the current UTC time.
        """
        self.session = session
        self.clock = clock

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _load_deal(self, deal_id: int) -> Deal:
        deal = self.session.scalars(
            select(Deal)
            .options(selectinload(Deal.property), selectinload(Deal.inquiry))
            .where(Deal.id == deal_id)
        ).first()
        if deal is None:
            raise NotFoundError("Deal", deal_id)
        return deal

    def _active_deal_id(self, property_id: int) -> Optional[int]:
        return self.session.scalars(
            select(Deal.id).where(
                Deal.property_id == property_id,
                Deal.status != DealStatus.CANCELLED.value,
            )
        ).first()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def create_deal(
        self,
        property_id: int,
        agent_id: int,
        buyer_name: str,
        buyer_email: str,
        sale_price: Number,
        commission_rate: Optional[Number] = None,
        inquiry_id: Optional[int] = None,
        buyer_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Deal:
        """
        Open a pending deal on a property.

        The property moves to UNDER_OFFER with closed_deal_id set, and a linked
        inquiry is closed against the new deal.

        Raises:
            ValidationError: Non-positive price or rate outside 0-100.
            NotFoundError: Unknown property, agent or inquiry.
            ConflictError: The property already has a non-cancelled deal or is sold.
            InvalidStateError: The linked inquiry is already closed.
        """
        price = to_decimal(sale_price)
        rate = to_decimal(
            commission_rate if commission_rate is not None else SETTINGS.default_commission_rate
        )
        _validate_amounts(price, rate)

        prop = self.session.get(Property, property_id)
        if prop is None or prop.is_deleted:
            raise NotFoundError("Property", property_id)

        if self.session.get(Agent, agent_id) is None:
            raise NotFoundError("Agent", agent_id)

        existing_id = self._active_deal_id(property_id)
        if existing_id is not None:
            raise ConflictError(f"Property {property_id} already has an active deal ({existing_id})")

        if prop.status == PropertyStatus.SOLD.value:
            raise ConflictError("Cannot create deal for an already sold property")

        inquiry: Optional[Inquiry] = None
        if inquiry_id is not None:
            inquiry = self.session.get(Inquiry, inquiry_id)
            if inquiry is None or inquiry.is_deleted:
                raise NotFoundError("Inquiry", inquiry_id)
            if inquiry.status == InquiryStatus.CLOSED.value:
                raise InvalidStateError("Cannot create deal from a closed inquiry")

        now = self.clock()
        deal = Deal(
            property_id=property_id,
            agent_id=agent_id,
            inquiry_id=inquiry_id,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            buyer_phone=buyer_phone,
            sale_price=price,
            commission_rate=rate,
            notes=notes,
            status=DealStatus.PENDING.value,
            created_at=now,
        )
        deal.calculate_commission()
        self.session.add(deal)

        try:
            # Assigns deal.id; the partial unique index rejects a racing second deal
            self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Property {property_id} already has an active deal"
            ) from exc

        previous_status = prop.status
        prop.mark_under_offer(deal.id, now)
        if inquiry is not None:
            inquiry.close(deal.id, now)
        self.session.flush()

        logger = get_context_logger(__name__, deal_id=deal.id)
        log_transition(
            logger, "deal", deal.id, None, deal.status,
            property_id=property_id, inquiry_id=inquiry_id,
            sale_price=str(deal.sale_price), commission_amount=str(deal.commission_amount),
        )
        log_transition(logger, "property", prop.id, previous_status, prop.status)
        return deal

    def complete_deal(self, deal_id: int, notes: Optional[str] = None) -> Deal:
        """
        Close a pending deal as a sale.

        Raises:
            NotFoundError: Unknown deal.
            InvalidStateError: The deal is not pending.
        """
        deal = self._load_deal(deal_id)
        now = self.clock()

        deal.complete(now)
        deal.notes = append_note_section(deal.notes, "Completion Notes", notes)

        prop = deal.property
        previous_status = prop.status
        prop.mark_sold(deal.id, now)
        self.session.flush()

        logger = get_context_logger(__name__, deal_id=deal.id)
        log_transition(logger, "deal", deal.id, DealStatus.PENDING.value, deal.status)
        log_transition(logger, "property", prop.id, previous_status, prop.status)
        return deal

    def cancel_deal(self, deal_id: int, reason: Optional[str] = None) -> Deal:
        """
        Cancel a pending deal and undo its effects.

        The property returns to PUBLISHED with no deal link; a linked inquiry
        that is CLOSED is reopened.

        Raises:
            NotFoundError: Unknown deal.
            InvalidStateError: The deal is completed or already cancelled.
        """
        deal = self._load_deal(deal_id)
        logger = get_context_logger(__name__, deal_id=deal.id)
        previous_deal_status = deal.status
        now = self.clock()

        deal.cancel(now)
        deal.notes = append_note_section(
            deal.notes, "Cancellation Reason", reason, first_prefix="Cancellation reason: "
        )

        prop = deal.property
        previous_property_status = prop.status
        prop.revert_to_published(now)

        inquiry = deal.inquiry
        if inquiry is not None and inquiry.status == InquiryStatus.CLOSED.value:
            inquiry.reopen(now)
            log_transition(logger, "inquiry", inquiry.id, InquiryStatus.CLOSED.value, inquiry.status)

        self.session.flush()

        log_transition(logger, "deal", deal.id, previous_deal_status, deal.status, reason=reason)
        log_transition(logger, "property", prop.id, previous_property_status, prop.status)
        return deal

    def update_deal(
        self,
        deal_id: int,
        buyer_name: str,
        buyer_email: str,
        sale_price: Number,
        commission_rate: Number,
        buyer_phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Deal:
        """
        Correct a pending deal's terms; the commission is recomputed.

        Raises:
            NotFoundError: Unknown deal.
            InvalidStateError: The deal is not pending.
            ValidationError: Non-positive price or rate outside 0-100.
        """
        deal = self._load_deal(deal_id)
        if deal.status != DealStatus.PENDING.value:
            raise InvalidStateError("Only pending deals can be updated")

        price = to_decimal(sale_price)
        rate = to_decimal(commission_rate)
        _validate_amounts(price, rate)

        deal.buyer_name = buyer_name
        deal.buyer_email = buyer_email
        deal.buyer_phone = buyer_phone
        deal.sale_price = price
        deal.commission_rate = rate
        deal.notes = notes
        deal.updated_at = self.clock()
        deal.calculate_commission()
        self.session.flush()

        get_context_logger(__name__, deal_id=deal.id).info(
            f"Deal {deal.id} updated",
            extra={"extra_data": {"sale_price": str(price), "commission_amount": str(deal.commission_amount)}},
        )
        return deal

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _to_summary(self, deal: Deal) -> DealSummary:
        prop = deal.property
        return DealSummary(
            id=deal.id,
            property_id=deal.property_id,
            property_title=prop.title if prop else "Unknown",
            property_city=prop.city if prop else None,
            buyer_name=deal.buyer_name or "Unknown",
            buyer_email=deal.buyer_email,
            agent_id=deal.agent_id,
            agent_name=deal.agent.full_name if deal.agent else "Unknown",
            sale_price=deal.sale_price,
            commission_amount=deal.commission_amount,
            status=deal.status,
            created_at=deal.created_at,
            closed_at=deal.closed_at,
        )

    def get_deal(self, deal_id: int) -> DealDetail:
        deal = self._load_deal(deal_id)
        summary = self._to_summary(deal)
        return DealDetail(
            **summary.__dict__,
            buyer_phone=deal.buyer_phone,
            commission_rate=deal.commission_rate,
            inquiry_id=deal.inquiry_id,
            inquiry_visitor_name=deal.inquiry.visitor_name if deal.inquiry else None,
            agent_email=deal.agent.email if deal.agent else None,
            notes=deal.notes,
            updated_at=deal.updated_at,
        )

    def _filtered(
        self,
        status: Optional[str] = None,
        agent_id: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ):
        query = select(Deal)
        if status:
            query = query.where(Deal.status == status.upper())
        if agent_id is not None:
            query = query.where(Deal.agent_id == agent_id)
        if from_date is not None:
            query = query.where(Deal.created_at >= from_date)
        if to_date is not None:
            query = query.where(Deal.created_at <= to_date)
        return query

    def list_deals(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[str] = None,
        agent_id: Optional[int] = None,
        search: Optional[str] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> DealListResult:
        """List deals newest first, with filtering and pagination."""
        page = max(page, 1)
        query = self._filtered(status, agent_id, from_date, to_date).join(Deal.property)

        if search and search.strip():
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(Deal.buyer_name).like(pattern),
                    func.lower(Property.title).like(pattern),
                )
            )

        total = self.session.scalar(select(func.count()).select_from(query.subquery())) or 0
        deals = self.session.scalars(
            query.options(selectinload(Deal.property), selectinload(Deal.agent))
            .order_by(Deal.created_at.desc(), Deal.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()

        return DealListResult(
            items=[self._to_summary(d) for d in deals],
            total_count=total,
            page=page,
            page_size=page_size,
        )

    def get_statistics(
        self,
        agent_id: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> DealStatistics:
        """Deal counts by status plus revenue and commission over completed deals."""
        base = self._filtered(None, agent_id, from_date, to_date).subquery()

        counts = dict(
            self.session.execute(
                select(base.c.status, func.count()).group_by(base.c.status)
            ).all()
        )

        # Summed in Python: SQLite has no exact decimal SUM
        completed = self.session.execute(
            select(base.c.sale_price, base.c.commission_amount).where(
                base.c.status == DealStatus.COMPLETED.value
            )
        ).all()

        stats = DealStatistics(
            total_deals=sum(counts.values()),
            pending_deals=counts.get(DealStatus.PENDING.value, 0),
            completed_deals=counts.get(DealStatus.COMPLETED.value, 0),
            cancelled_deals=counts.get(DealStatus.CANCELLED.value, 0),
        )
        if completed:
            prices = [Decimal(row.sale_price) for row in completed]
            commissions = [Decimal(row.commission_amount) for row in completed if row.commission_amount is not None]
            stats.total_revenue = quantize_money(sum(prices, Decimal("0")))
            stats.average_sale_price = quantize_money(stats.total_revenue / len(prices))
            if commissions:
                stats.total_commission = quantize_money(sum(commissions, Decimal("0")))
                stats.average_commission = quantize_money(stats.total_commission / len(commissions))
        return stats


__all__ = [
    "DealService",
    "DealSummary",
    "DealDetail",
    "DealListResult",
    "DealStatistics",
]

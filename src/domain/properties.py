"""Property domain service - listing records and their deal-driven status."""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.logging_config import get_logger, log_transition
from core.models import Agent, Deal, DealStatus, Property, PropertyStatus
from core.utils import Clock, to_decimal, utcnow

LOGGER = get_logger(__name__)


class PropertyService:
    """
    Service for property records.

    Status changes that involve a deal are made by DealService through the
    Property model's mark_under_offer / mark_sold / revert_to_published;
    this service only handles listing-side entry points.
    """

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    def get_property(self, property_id: int, include_deleted: bool = False) -> Property:
        """
        Load a property by id.

        Raises:
            NotFoundError: If the id does not resolve (or the record is soft-deleted).
        """
        prop = self.session.get(Property, property_id)
        if prop is None or (prop.is_deleted and not include_deleted):
            raise NotFoundError("Property", property_id)
        return prop

    def create_property(
        self,
        title: str,
        price: Union[Decimal, float, int, str],
        city: Optional[str] = None,
        agent_id: Optional[int] = None,
        publish: bool = False,
    ) -> Property:
        price_value = to_decimal(price)
        if price_value < 0:
            raise ValidationError("Price must not be negative")
        if agent_id is not None and self.session.get(Agent, agent_id) is None:
            raise NotFoundError("Agent", agent_id)

        now = self.clock()
        prop = Property(
            title=title,
            city=city,
            price=price_value,
            agent_id=agent_id,
            status=PropertyStatus.DRAFT.value,
            created_at=now,
        )
        self.session.add(prop)
        self.session.flush()
        log_transition(LOGGER, "property", prop.id, None, prop.status)

        if publish:
            self.publish_property(prop.id)
        return prop

    def publish_property(self, property_id: int) -> Property:
        prop = self.get_property(property_id)
        previous = prop.status
        prop.publish(self.clock())
        self.session.flush()
        if previous != prop.status:
            log_transition(LOGGER, "property", prop.id, previous, prop.status)
        return prop

    def active_deal_for(self, property_id: int) -> Optional[Deal]:
        """Return the non-cancelled deal attached to a property, if any."""
        return self.session.scalars(
            select(Deal).where(
                Deal.property_id == property_id,
                Deal.status != DealStatus.CANCELLED.value,
            )
        ).first()

    def soft_delete_property(self, property_id: int) -> Property:
        """
        Soft-delete a listing.

        Raises:
            ConflictError: If the property still has a pending or completed deal.
        """
        prop = self.get_property(property_id)
        active = self.active_deal_for(property_id)
        if active is not None:
            raise ConflictError(
                f"Property {property_id} has deal {active.id} ({active.status}) and cannot be deleted"
            )
        prop.soft_delete(self.clock())
        self.session.flush()
        LOGGER.info(f"Property {property_id} soft-deleted")
        return prop


__all__ = ["PropertyService"]

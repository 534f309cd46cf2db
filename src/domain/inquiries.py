"""Inquiry domain service - buyer inquiries and their close/reopen cycle."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import NotFoundError
from core.logging_config import get_logger, log_transition
from core.models import Agent, Inquiry, InquiryStatus, Property
from core.utils import Clock, utcnow

LOGGER = get_logger(__name__)


class InquiryService:
    """Service for inquiry lifecycle operations outside of deals."""

    def __init__(self, session: Session, clock: Clock = utcnow) -> None:
        self.session = session
        self.clock = clock

    def get_inquiry(self, inquiry_id: int) -> Inquiry:
        inquiry = self.session.get(Inquiry, inquiry_id)
        if inquiry is None or inquiry.is_deleted:
            raise NotFoundError("Inquiry", inquiry_id)
        return inquiry

    def create_inquiry(
        self,
        visitor_name: str,
        visitor_email: str,
        property_id: Optional[int] = None,
        visitor_phone: Optional[str] = None,
        message: Optional[str] = None,
    ) -> Inquiry:
        """Record a buyer's contact request. New inquiries start in NEW."""
        if property_id is not None:
            prop = self.session.get(Property, property_id)
            if prop is None or prop.is_deleted:
                raise NotFoundError("Property", property_id)

        inquiry = Inquiry(
            property_id=property_id,
            visitor_name=visitor_name,
            visitor_email=visitor_email,
            visitor_phone=visitor_phone,
            message=message,
            status=InquiryStatus.NEW.value,
            created_at=self.clock(),
        )
        self.session.add(inquiry)
        self.session.flush()
        log_transition(LOGGER, "inquiry", inquiry.id, None, inquiry.status, property_id=property_id)
        return inquiry

    def assign_inquiry(self, inquiry_id: int, agent_id: int) -> Inquiry:
        """
        Assign an agent.

        Raises:
            NotFoundError: Unknown inquiry or agent.
            InvalidStateError: The inquiry is closed.
        """
        inquiry = self.get_inquiry(inquiry_id)
        if self.session.get(Agent, agent_id) is None:
            raise NotFoundError("Agent", agent_id)

        previous = inquiry.status
        inquiry.assign_to(agent_id, self.clock())
        self.session.flush()
        log_transition(LOGGER, "inquiry", inquiry.id, previous, inquiry.status, agent_id=agent_id)
        return inquiry

    def close_inquiry(self, inquiry_id: int) -> Inquiry:
        """Administrative close, not tied to a deal."""
        inquiry = self.get_inquiry(inquiry_id)
        previous = inquiry.status
        inquiry.close(None, self.clock())
        self.session.flush()
        log_transition(LOGGER, "inquiry", inquiry.id, previous, inquiry.status)
        return inquiry

    def reopen_inquiry(self, inquiry_id: int) -> Inquiry:
        """
        Reopen a closed inquiry.

        Raises:
            InvalidStateError: The inquiry is not closed.
        """
        inquiry = self.get_inquiry(inquiry_id)
        inquiry.reopen(self.clock())
        self.session.flush()
        log_transition(LOGGER, "inquiry", inquiry.id, InquiryStatus.CLOSED.value, inquiry.status)
        return inquiry


__all__ = ["InquiryService"]

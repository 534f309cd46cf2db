"""Tests for property publishing, deal-driven transitions and soft delete."""
from __future__ import annotations

from decimal import Decimal

import pytest

from core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from core.models import PropertyStatus
from domain.deals import DealService
from domain.properties import PropertyService


class TestPropertyService:
    """Listing-side operations."""

    def test_create_draft(self, db_session, clock, sample_agent):
        prop = PropertyService(db_session, clock=clock).create_property(
            title="Orchard House", price="410000", city="Shelbyville", agent_id=sample_agent.id,
        )

        assert prop.status == PropertyStatus.DRAFT.value
        assert prop.price == Decimal("410000")

    def test_create_and_publish(self, db_session, clock):
        prop = PropertyService(db_session, clock=clock).create_property(
            title="Orchard House", price=410000, publish=True,
        )

        assert prop.status == PropertyStatus.PUBLISHED.value
        assert prop.updated_at == clock.now

    def test_negative_price_rejected(self, db_session, clock):
        with pytest.raises(ValidationError):
            PropertyService(db_session, clock=clock).create_property(title="Shed", price=-1)

    def test_publish_without_price_fails(self, db_session, clock):
        service = PropertyService(db_session, clock=clock)
        prop = service.create_property(title="Shed", price=0)

        with pytest.raises(InvalidStateError):
            service.publish_property(prop.id)

    def test_publish_is_idempotent(self, db_session, clock, sample_property):
        service = PropertyService(db_session, clock=clock)

        service.publish_property(sample_property.id)

        assert sample_property.status == PropertyStatus.PUBLISHED.value

    def test_soft_delete_hides_property(self, db_session, clock, sample_property):
        service = PropertyService(db_session, clock=clock)

        service.soft_delete_property(sample_property.id)

        assert sample_property.is_deleted is True
        assert sample_property.deleted_at == clock.now
        with pytest.raises(NotFoundError):
            service.get_property(sample_property.id)
        assert service.get_property(sample_property.id, include_deleted=True) is sample_property

    def test_soft_delete_with_pending_deal_conflicts(self, db_session, clock, sample_agent, sample_property):
        DealService(db_session, clock=clock).create_deal(
            property_id=sample_property.id,
            agent_id=sample_agent.id,
            buyer_name="Bob",
            buyer_email="bob@example.com",
            sale_price=300000,
        )

        with pytest.raises(ConflictError):
            PropertyService(db_session, clock=clock).soft_delete_property(sample_property.id)

    def test_deleted_property_cannot_get_deal(self, db_session, clock, sample_agent, sample_property):
        PropertyService(db_session, clock=clock).soft_delete_property(sample_property.id)

        with pytest.raises(NotFoundError):
            DealService(db_session, clock=clock).create_deal(
                property_id=sample_property.id,
                agent_id=sample_agent.id,
                buyer_name="Bob",
                buyer_email="bob@example.com",
                sale_price=300000,
            )


class TestPropertyTransitions:
    """Model-level transitions driven by the deal lifecycle."""

    def test_mark_under_offer_is_idempotent(self, db_session, clock, sample_property):
        sample_property.mark_under_offer(7, clock.now)
        first_update = sample_property.updated_at
        clock.advance(minutes=5)

        sample_property.mark_under_offer(7, clock.now)

        assert sample_property.status == PropertyStatus.UNDER_OFFER.value
        assert sample_property.closed_deal_id == 7
        assert sample_property.updated_at == first_update

    def test_mark_sold_keeps_linked_deal(self, db_session, clock, sample_property):
        sample_property.mark_under_offer(7, clock.now)

        sample_property.mark_sold(at=clock.now)

        assert sample_property.status == PropertyStatus.SOLD.value
        assert sample_property.closed_deal_id == 7

    def test_revert_to_published_clears_link(self, db_session, clock, sample_property):
        sample_property.mark_under_offer(7, clock.now)

        sample_property.revert_to_published(clock.now)

        assert sample_property.status == PropertyStatus.PUBLISHED.value
        assert sample_property.closed_deal_id is None

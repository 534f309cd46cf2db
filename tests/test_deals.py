"""Tests for the deal lifecycle and its effect on properties and inquiries."""
from __future__ import annotations

import logging
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from core.models import Deal, DealStatus, Inquiry, InquiryStatus, PropertyStatus
from domain.deals import DealService
from domain.inquiries import InquiryService


def _open_deal(service, prop, agent, inquiry=None, **overrides):
    kwargs = dict(
        property_id=prop.id,
        agent_id=agent.id,
        buyer_name="Bob Buyer",
        buyer_email="bob@example.com",
        sale_price=Decimal("300000"),
        commission_rate=Decimal("5"),
        inquiry_id=inquiry.id if inquiry else None,
    )
    kwargs.update(overrides)
    return service.create_deal(**kwargs)


# ============================================================================
# Create
# ============================================================================


class TestCreateDeal:
    """Opening a deal."""

    def test_create_puts_property_under_offer(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        deal = _open_deal(service, sample_property, sample_agent)

        assert deal.id is not None
        assert deal.status == DealStatus.PENDING.value
        assert deal.commission_amount == Decimal("15000.00")
        assert deal.created_at == clock.now
        assert sample_property.status == PropertyStatus.UNDER_OFFER.value
        assert sample_property.closed_deal_id == deal.id

    def test_create_closes_linked_inquiry(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry
    ):
        service = DealService(db_session, clock=clock)

        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)

        assert sample_inquiry.status == InquiryStatus.CLOSED.value
        assert sample_inquiry.related_deal_id == deal.id
        assert sample_inquiry.closed_at == clock.now

    def test_default_commission_rate_applied(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        deal = _open_deal(service, sample_property, sample_agent, commission_rate=None)

        assert deal.commission_rate == Decimal("5.0")
        assert deal.commission_amount == Decimal("15000.00")

    def test_commission_rounded_to_cents(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        deal = _open_deal(
            service, sample_property, sample_agent,
            sale_price="123456.78", commission_rate="2.5",
        )

        # 123456.78 * 2.5 / 100 = 3086.4195
        assert deal.commission_amount == Decimal("3086.42")

    def test_zero_price_rejected(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        with pytest.raises(ValidationError):
            _open_deal(service, sample_property, sample_agent, sale_price=0)

        assert sample_property.status == PropertyStatus.PUBLISHED.value

    def test_commission_rate_out_of_range_rejected(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        with pytest.raises(ValidationError):
            _open_deal(service, sample_property, sample_agent, commission_rate="100.5")
        with pytest.raises(ValidationError):
            _open_deal(service, sample_property, sample_agent, commission_rate="-1")

    def test_unknown_property(self, db_session, clock, sample_agent):
        service = DealService(db_session, clock=clock)

        with pytest.raises(NotFoundError) as exc_info:
            service.create_deal(
                property_id=99999,
                agent_id=sample_agent.id,
                buyer_name="Bob",
                buyer_email="bob@example.com",
                sale_price=100000,
            )
        assert "Property with ID 99999 not found" in str(exc_info.value)

    def test_unknown_agent(self, db_session, clock, sample_property):
        service = DealService(db_session, clock=clock)

        with pytest.raises(NotFoundError):
            service.create_deal(
                property_id=sample_property.id,
                agent_id=99999,
                buyer_name="Bob",
                buyer_email="bob@example.com",
                sale_price=100000,
            )

    def test_unknown_inquiry(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)

        with pytest.raises(NotFoundError):
            _open_deal(service, sample_property, sample_agent, inquiry_id=99999)

    def test_second_active_deal_conflicts(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        first = _open_deal(service, sample_property, sample_agent)

        with pytest.raises(ConflictError):
            _open_deal(service, sample_property, sample_agent, buyer_name="Carol")

        assert sample_property.closed_deal_id == first.id

    def test_sold_property_conflicts(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.complete_deal(deal.id)

        with pytest.raises(ConflictError):
            _open_deal(service, sample_property, sample_agent, buyer_name="Carol")

    def test_closed_inquiry_rejected(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry
    ):
        InquiryService(db_session, clock=clock).close_inquiry(sample_inquiry.id)
        service = DealService(db_session, clock=clock)

        with pytest.raises(InvalidStateError):
            _open_deal(service, sample_property, sample_agent, sample_inquiry)

        assert sample_property.status == PropertyStatus.PUBLISHED.value

    def test_new_deal_allowed_after_cancellation(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        first = _open_deal(service, sample_property, sample_agent)
        service.cancel_deal(first.id, reason="financing fell through")

        second = _open_deal(service, sample_property, sample_agent, buyer_name="Carol")

        assert second.id != first.id
        assert sample_property.status == PropertyStatus.UNDER_OFFER.value
        assert sample_property.closed_deal_id == second.id


# ============================================================================
# Complete
# ============================================================================


class TestCompleteDeal:
    """Closing a deal as a sale."""

    def test_complete_marks_property_sold(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        completed_at = clock.advance(days=30)

        service.complete_deal(deal.id)

        assert deal.status == DealStatus.COMPLETED.value
        assert deal.closed_at == completed_at
        assert sample_property.status == PropertyStatus.SOLD.value
        assert sample_property.closed_deal_id == deal.id

    def test_completion_notes_appended(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, notes="Cash buyer")

        service.complete_deal(deal.id, notes="Keys handed over")

        assert deal.notes == "Cash buyer\n\n--- Completion Notes ---\nKeys handed over"

    def test_completion_notes_without_prior_notes(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)

        service.complete_deal(deal.id, notes="Keys handed over")

        assert deal.notes == "Keys handed over"

    def test_complete_cancelled_deal_fails(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.cancel_deal(deal.id)

        with pytest.raises(InvalidStateError):
            service.complete_deal(deal.id)

        assert sample_property.status == PropertyStatus.PUBLISHED.value

    def test_complete_twice_fails(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.complete_deal(deal.id)

        with pytest.raises(InvalidStateError):
            service.complete_deal(deal.id)

    def test_complete_unknown_deal(self, db_session, clock):
        with pytest.raises(NotFoundError):
            DealService(db_session, clock=clock).complete_deal(99999)


# ============================================================================
# Cancel
# ============================================================================


class TestCancelDeal:
    """Cancelling a deal restores the property and inquiry."""

    def test_cancel_with_reason_restores_everything(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry
    ):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)

        service.cancel_deal(deal.id, reason="buyer withdrew")

        assert deal.status == DealStatus.CANCELLED.value
        assert deal.notes == "Cancellation reason: buyer withdrew"
        assert sample_property.status == PropertyStatus.PUBLISHED.value
        assert sample_property.closed_deal_id is None
        assert sample_inquiry.status == InquiryStatus.NEW.value
        assert sample_inquiry.closed_at is None
        assert sample_inquiry.related_deal_id is None

    def test_cancel_reason_appended_to_existing_notes(
        self, db_session, clock, sample_agent, sample_property
    ):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, notes="Needs mortgage")

        service.cancel_deal(deal.id, reason="buyer withdrew")

        assert deal.notes == "Needs mortgage\n\n--- Cancellation Reason ---\nbuyer withdrew"

    def test_cancel_without_reason_keeps_notes(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, notes="Needs mortgage")

        service.cancel_deal(deal.id)

        assert deal.notes == "Needs mortgage"

    def test_cancel_reopens_assigned_inquiry_as_assigned(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry
    ):
        InquiryService(db_session, clock=clock).assign_inquiry(sample_inquiry.id, sample_agent.id)
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)

        service.cancel_deal(deal.id)

        assert sample_inquiry.status == InquiryStatus.ASSIGNED.value
        assert sample_inquiry.assigned_agent_id == sample_agent.id

    def test_cancel_completed_deal_fails(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.complete_deal(deal.id)

        with pytest.raises(InvalidStateError):
            service.cancel_deal(deal.id, reason="too late")

        assert deal.status == DealStatus.COMPLETED.value
        assert sample_property.status == PropertyStatus.SOLD.value
        assert sample_property.closed_deal_id == deal.id

    def test_cancel_twice_fails(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.cancel_deal(deal.id, reason="buyer withdrew")

        with pytest.raises(InvalidStateError):
            service.cancel_deal(deal.id, reason="again")

        assert deal.notes == "Cancellation reason: buyer withdrew"

    def test_cancel_logs_carry_deal_id(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry, caplog
    ):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)

        with caplog.at_level(logging.INFO, logger="domain.deals"):
            service.cancel_deal(deal.id, reason="buyer withdrew")

        records = [r for r in caplog.records if r.name == "domain.deals"]
        assert {r.extra_data["entity"] for r in records} == {"deal", "property", "inquiry"}
        assert all(r.deal_id == deal.id for r in records)
        assert f"Deal {deal.id}: PENDING -> CANCELLED" in [r.getMessage() for r in records]

    def test_cancel_unknown_deal(self, db_session, clock):
        with pytest.raises(NotFoundError):
            DealService(db_session, clock=clock).cancel_deal(99999)


# ============================================================================
# Update and queries
# ============================================================================


class TestUpdateDeal:
    """Correcting a pending deal."""

    def test_update_recomputes_commission(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)

        service.update_deal(
            deal.id,
            buyer_name="Bob B. Buyer",
            buyer_email="bob.b@example.com",
            sale_price="290000",
            commission_rate="3",
        )

        assert deal.buyer_name == "Bob B. Buyer"
        assert deal.sale_price == Decimal("290000")
        assert deal.commission_amount == Decimal("8700.00")

    def test_update_completed_deal_fails(self, db_session, clock, sample_agent, sample_property):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent)
        service.complete_deal(deal.id)

        with pytest.raises(InvalidStateError):
            service.update_deal(
                deal.id, buyer_name="X", buyer_email="x@example.com",
                sale_price=1, commission_rate=1,
            )


class TestDealQueries:
    """Detail, listing and statistics."""

    def test_get_deal_detail(self, db_session, clock, sample_agent, sample_property, sample_inquiry):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)

        detail = service.get_deal(deal.id)

        assert detail.property_title == "Riverside Cottage"
        assert detail.agent_name == "Jane Realtor"
        assert detail.inquiry_visitor_name == "Bob Buyer"
        data = detail.to_dict()
        assert data["commission_amount"] == 15000.0
        assert data["status"] == "PENDING"

    def test_get_unknown_deal(self, db_session, clock):
        with pytest.raises(NotFoundError):
            DealService(db_session, clock=clock).get_deal(99999)

    def test_list_newest_first_with_filters(
        self, db_session, clock, sample_agent, sample_property, make_property
    ):
        service = DealService(db_session, clock=clock)
        older = _open_deal(service, sample_property, sample_agent)
        clock.advance(hours=1)
        other = make_property("Hilltop Barn")
        newer = _open_deal(service, other, sample_agent, buyer_name="Carol Client")
        service.cancel_deal(older.id)

        result = service.list_deals()
        assert [item.id for item in result.items] == [newer.id, older.id]
        assert result.total_count == 2

        cancelled = service.list_deals(status="cancelled")
        assert [item.id for item in cancelled.items] == [older.id]

        searched = service.list_deals(search="hilltop")
        assert [item.id for item in searched.items] == [newer.id]

        by_buyer = service.list_deals(search="CAROL")
        assert [item.id for item in by_buyer.items] == [newer.id]

    def test_list_pagination(self, db_session, clock, sample_agent, make_property):
        service = DealService(db_session, clock=clock)
        for i in range(5):
            _open_deal(service, make_property(f"Lot {i}"), sample_agent)
            clock.advance(minutes=1)

        page = service.list_deals(page=2, page_size=2)

        assert len(page.items) == 2
        assert page.total_count == 5
        assert page.total_pages == 3

    def test_statistics(self, db_session, clock, sample_agent, sample_property, make_property):
        service = DealService(db_session, clock=clock)
        sold_a = _open_deal(service, sample_property, sample_agent)
        sold_b = _open_deal(
            service, make_property("Hilltop Barn"), sample_agent,
            sale_price="100000", commission_rate="4",
        )
        _open_deal(service, make_property("Lake House"), sample_agent)
        dropped = _open_deal(service, make_property("City Flat"), sample_agent)
        service.complete_deal(sold_a.id)
        service.complete_deal(sold_b.id)
        service.cancel_deal(dropped.id)

        stats = service.get_statistics()

        assert stats.total_deals == 4
        assert stats.pending_deals == 1
        assert stats.completed_deals == 2
        assert stats.cancelled_deals == 1
        assert stats.total_revenue == Decimal("400000.00")
        assert stats.total_commission == Decimal("19000.00")
        assert stats.average_sale_price == Decimal("200000.00")
        assert stats.average_commission == Decimal("9500.00")

    def test_statistics_empty(self, db_session, clock):
        stats = DealService(db_session, clock=clock).get_statistics()

        assert stats.total_deals == 0
        assert stats.total_revenue == Decimal("0")

    def test_statistics_date_filter(self, db_session, clock, sample_agent, sample_property, make_property):
        service = DealService(db_session, clock=clock)
        _open_deal(service, sample_property, sample_agent)
        clock.advance(days=10)
        _open_deal(service, make_property("Hilltop Barn"), sample_agent)

        stats = service.get_statistics(from_date=clock.now - timedelta(days=1))

        assert stats.total_deals == 1


# ============================================================================
# Storage guarantees
# ============================================================================


def _disk_failure(*args, **kwargs):
    raise OperationalError("UPDATE inquiry", {}, Exception("disk I/O error"))


class TestStorageGuarantees:
    """Unique active deal at the storage level, all-or-nothing transitions."""

    def test_unique_index_rejects_racing_second_deal(
        self, db_session, clock, sample_agent, sample_property, monkeypatch
    ):
        service = DealService(db_session, clock=clock)
        first = _open_deal(service, sample_property, sample_agent)
        # A concurrent request that read the property before the first deal existed
        monkeypatch.setattr(DealService, "_active_deal_id", lambda self, property_id: None)

        with pytest.raises(ConflictError) as exc_info:
            with db_session.begin_nested():
                _open_deal(service, sample_property, sample_agent, buyer_name="Carol")

        assert isinstance(exc_info.value.__cause__, IntegrityError)
        assert db_session.query(Deal).filter_by(property_id=sample_property.id).count() == 1
        assert sample_property.closed_deal_id == first.id

    def test_failed_create_leaves_nothing_behind(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry, monkeypatch
    ):
        service = DealService(db_session, clock=clock)
        monkeypatch.setattr(Inquiry, "close", _disk_failure)

        with pytest.raises(OperationalError):
            with db_session.begin_nested():
                _open_deal(service, sample_property, sample_agent, sample_inquiry)

        assert db_session.query(Deal).count() == 0
        assert sample_property.status == PropertyStatus.PUBLISHED.value
        assert sample_property.closed_deal_id is None
        assert sample_inquiry.status == InquiryStatus.NEW.value

    def test_failed_cancel_leaves_deal_property_and_inquiry_unchanged(
        self, db_session, clock, sample_agent, sample_property, sample_inquiry, monkeypatch
    ):
        service = DealService(db_session, clock=clock)
        deal = _open_deal(service, sample_property, sample_agent, sample_inquiry)
        monkeypatch.setattr(Inquiry, "reopen", _disk_failure)

        with pytest.raises(OperationalError):
            with db_session.begin_nested():
                service.cancel_deal(deal.id, reason="buyer withdrew")

        assert deal.status == DealStatus.PENDING.value
        assert deal.notes is None
        assert sample_property.status == PropertyStatus.UNDER_OFFER.value
        assert sample_property.closed_deal_id == deal.id
        assert sample_inquiry.status == InquiryStatus.CLOSED.value
        assert sample_inquiry.related_deal_id == deal.id

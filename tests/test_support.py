"""
Tests for customer support tickets.

Tests cover:
1. Ticket creation and validation
2. Visibility: own tickets only, internal notes hidden from customers
3. Status workflow, resolution and reopening
4. Customer replies, assignment to staff, rating
5. Listing with filters and pagination; stats

Run with: pytest tests/test_support.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.pickups.config import EngineConfig
from src.pickups.errors import (
    InvalidStatusTransition,
    NotAuthorized,
    OrderNotFound,
    TicketNotFound,
    ValidationError,
)
from src.pickups.lifecycle import OrderService
from src.pickups.models import Address, ItemCondition, OrderItem, OrderPriority, TimeSlot
from src.store.repository import PickupRepository
from src.support.tickets import TicketCategory, TicketService, TicketStatus

NOW = datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now += timedelta(minutes=minutes)


# ── Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def repo() -> PickupRepository:
    return PickupRepository()


@pytest.fixture
def service(repo, clock) -> TicketService:
    return TicketService(repo, EngineConfig(), clock=clock)


def _ticket(service, customer_id="cust-1", **kwargs):
    return service.create_ticket(
        customer_id=customer_id,
        subject=kwargs.pop("subject", "Pickup agent did not arrive"),
        description=kwargs.pop("description", "Nobody came during the morning slot."),
        category=kwargs.pop("category", TicketCategory.PICKUP_ISSUE),
        **kwargs,
    )


# ── Test: Create ──────────────────────────────────────────────────


class TestCreateTicket:
    """Opening tickets."""

    def test_creates_open_ticket(self, service):
        ticket = _ticket(service, priority=OrderPriority.HIGH, tags=["late"])

        assert ticket.status == TicketStatus.OPEN
        assert ticket.ticket_number == "ST000001"
        assert ticket.priority == OrderPriority.HIGH
        assert ticket.tags == ["late"]
        assert ticket.last_activity_at == NOW

    def test_links_existing_order(self, service, repo):
        order = OrderService(repo, EngineConfig(), clock=lambda: NOW).create_order(
            "cust-1",
            Address("Pune", "411038"),
            NOW.date(),
            TimeSlot.MORNING,
            [OrderItem("laptop", ItemCondition.GOOD, 1, 2500.0)],
        )
        ticket = _ticket(service, order_id=order.id)
        assert ticket.order_id == order.id

    def test_unknown_order(self, service):
        with pytest.raises(OrderNotFound):
            _ticket(service, order_id="ghost")

    @pytest.mark.parametrize(
        "subject, description",
        [("", "text"), ("   ", "text"), ("x" * 201, "text"), ("ok", ""), ("ok", "y" * 2001)],
    )
    def test_rejects_bad_text(self, service, subject, description):
        with pytest.raises(ValidationError):
            _ticket(service, subject=subject, description=description)


# ── Test: Visibility ──────────────────────────────────────────────


class TestVisibility:
    """Who can see what."""

    def test_customer_sees_only_own_ticket(self, service):
        ticket = _ticket(service)
        assert service.get_ticket(ticket.id, "cust-1", staff=False).id == ticket.id
        with pytest.raises(NotAuthorized):
            service.get_ticket(ticket.id, "cust-2", staff=False)

    def test_internal_notes_hidden_from_customer(self, service):
        ticket = _ticket(service)
        service.add_message(ticket.id, "agent-staff", "Called the agent", staff=True, is_internal=True)
        service.add_message(ticket.id, "agent-staff", "We are on it", staff=True)

        customer_view = service.get_ticket(ticket.id, "cust-1", staff=False)
        staff_view = service.get_ticket(ticket.id)

        assert [m.message for m in customer_view.messages] == ["We are on it"]
        assert len(staff_view.messages) == 2

    def test_customer_cannot_post_internal_notes(self, service):
        ticket = _ticket(service)
        with pytest.raises(NotAuthorized):
            service.add_message(ticket.id, "cust-1", "secret", is_internal=True)

    def test_customer_cannot_post_on_others_ticket(self, service):
        ticket = _ticket(service)
        with pytest.raises(NotAuthorized):
            service.add_message(ticket.id, "cust-2", "hello")

    def test_unknown_ticket(self, service):
        with pytest.raises(TicketNotFound):
            service.get_ticket("nope")


# ── Test: Workflow ────────────────────────────────────────────────


class TestWorkflow:
    """Status changes, replies, assignment and rating."""

    def test_customer_reply_reopens_waiting_ticket(self, service, clock):
        ticket = _ticket(service)
        service.update_status(ticket.id, TicketStatus.WAITING_CUSTOMER, "staff-1")
        clock.advance(5)

        replied = service.add_message(ticket.id, "cust-1", "Here is the photo")

        assert replied.status == TicketStatus.OPEN
        assert replied.last_activity_at == clock.now

    def test_staff_reply_keeps_status(self, service):
        ticket = _ticket(service)
        service.update_status(ticket.id, TicketStatus.WAITING_CUSTOMER, "staff-1")
        replied = service.add_message(ticket.id, "staff-1", "Any update?", staff=True)
        assert replied.status == TicketStatus.WAITING_CUSTOMER

    def test_resolve_records_resolution_then_reopen(self, service):
        ticket = _ticket(service)
        resolved = service.update_status(
            ticket.id, TicketStatus.RESOLVED, "staff-1", resolution_note="Rescheduled"
        )
        assert resolved.resolution.resolved_by == "staff-1"
        assert resolved.resolution.note == "Rescheduled"

        closed = service.update_status(ticket.id, TicketStatus.CLOSED, "staff-1")
        assert closed.status == TicketStatus.CLOSED
        assert service.update_status(ticket.id, TicketStatus.OPEN, "cust-1").status == (
            TicketStatus.OPEN
        )

    def test_closed_ticket_cannot_jump_to_in_progress(self, service):
        ticket = _ticket(service)
        service.update_status(ticket.id, TicketStatus.CLOSED, "staff-1")
        with pytest.raises(InvalidStatusTransition):
            service.update_status(ticket.id, TicketStatus.IN_PROGRESS, "staff-1")

    def test_assign_moves_to_in_progress(self, service):
        ticket = _ticket(service)
        assigned = service.assign_ticket(ticket.id, "staff-2")
        assert assigned.assigned_to == "staff-2"
        assert assigned.status == TicketStatus.IN_PROGRESS

    def test_assign_resolved_ticket_is_rejected(self, service):
        ticket = _ticket(service)
        service.update_status(ticket.id, TicketStatus.RESOLVED, "staff-1")
        with pytest.raises(InvalidStatusTransition):
            service.assign_ticket(ticket.id, "staff-2")

    def test_rating_rules(self, service):
        ticket = _ticket(service)
        with pytest.raises(ValidationError):
            service.rate_ticket(ticket.id, "cust-1", 5)

        service.update_status(ticket.id, TicketStatus.RESOLVED, "staff-1")
        with pytest.raises(NotAuthorized):
            service.rate_ticket(ticket.id, "cust-2", 5)
        with pytest.raises(ValidationError):
            service.rate_ticket(ticket.id, "cust-1", 6)

        rated = service.rate_ticket(ticket.id, "cust-1", 4, "Quick fix")
        assert rated.rating.score == 4
        assert rated.rating.feedback == "Quick fix"

    def test_message_length(self, service):
        ticket = _ticket(service)
        with pytest.raises(ValidationError):
            service.add_message(ticket.id, "cust-1", "   ")
        with pytest.raises(ValidationError):
            service.add_message(ticket.id, "cust-1", "z" * 1001)


# ── Test: Listing ─────────────────────────────────────────────────


class TestListing:
    """Filters, pagination and stats."""

    def test_most_recent_activity_first_with_paging(self, service, clock):
        ids = []
        for _ in range(3):
            ids.append(_ticket(service).id)
            clock.advance(1)
        clock.advance(1)
        service.add_message(ids[0], "cust-1", "bump")

        first = service.list_tickets(limit=2)
        second = service.list_tickets(page=2, limit=2)

        assert [t.id for t in first.tickets] == [ids[0], ids[2]]
        assert first.total == 3
        assert first.has_next
        assert [t.id for t in second.tickets] == [ids[1]]
        assert not second.has_next

    def test_filters(self, service):
        _ticket(service, category=TicketCategory.PAYMENT_ISSUE, priority=OrderPriority.URGENT)
        _ticket(service, customer_id="cust-2")

        assert service.list_tickets(category=TicketCategory.PAYMENT_ISSUE).total == 1
        assert service.list_tickets(priority=OrderPriority.URGENT).total == 1
        assert service.list_tickets(customer_id="cust-2").total == 1
        assert service.list_tickets(status=TicketStatus.CLOSED).total == 0

    def test_invalid_paging(self, service):
        with pytest.raises(ValidationError):
            service.list_tickets(page=0)

    def test_stats(self, service, clock):
        clock.now = NOW - timedelta(days=10)
        old = _ticket(service, priority=OrderPriority.HIGH)
        clock.now = NOW
        _ticket(service, priority=OrderPriority.URGENT)
        fresh = _ticket(service)
        service.update_status(old.id, TicketStatus.RESOLVED, "staff-1")
        service.assign_ticket(fresh.id, "staff-1")

        stats = service.stats()

        assert stats.total == 3
        assert (stats.open, stats.in_progress, stats.resolved) == (1, 1, 1)
        assert (stats.urgent, stats.high) == (1, 1)
        assert stats.this_week == 2

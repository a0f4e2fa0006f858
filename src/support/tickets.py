"""
Customer support tickets.

A ticket is raised by a customer, optionally about one order, and worked by
staff through:

    open ⇄ in_progress ⇄ waiting_customer → resolved → closed
      └──────────────┴──────────────┴──→ resolved / closed
    resolved / closed → open (reopen)

A customer reply to a ticket that waits on the customer puts it back to
open. Resolving or closing records who resolved it and when; only the
ticket's customer may rate it, and only once it is resolved or closed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Callable

from src.assignment.transaction import run_with_retries
from src.pickups.clock import Clock, utcnow
from src.pickups.errors import InvalidStatusTransition, NotAuthorized, ValidationError
from src.pickups.models import OrderPriority
from src.store.repository import ticket_write

if TYPE_CHECKING:
    from src.pickups.config import EngineConfig
    from src.store.repository import PickupRepository

logger = logging.getLogger(__name__)

TICKET_NUMBER_PREFIX = "ST"
MAX_SUBJECT = 200
MAX_DESCRIPTION = 2000
MAX_MESSAGE = 1000


class TicketStatus(Enum):
    """Valid ticket status"""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    WAITING_CUSTOMER = "waiting_customer"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketCategory(Enum):
    """Valid ticket categories"""

    ORDER_ISSUE = "order_issue"
    PAYMENT_ISSUE = "payment_issue"
    PICKUP_ISSUE = "pickup_issue"
    ACCOUNT_ISSUE = "account_issue"
    GENERAL_INQUIRY = "general_inquiry"
    COMPLAINT = "complaint"
    FEEDBACK = "feedback"


TICKET_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset(
        {
            TicketStatus.IN_PROGRESS,
            TicketStatus.WAITING_CUSTOMER,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        }
    ),
    TicketStatus.IN_PROGRESS: frozenset(
        {
            TicketStatus.OPEN,
            TicketStatus.WAITING_CUSTOMER,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        }
    ),
    TicketStatus.WAITING_CUSTOMER: frozenset(
        {TicketStatus.OPEN, TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CLOSED}
    ),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.OPEN}),
    TicketStatus.CLOSED: frozenset({TicketStatus.OPEN}),
}

RATEABLE = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})


@dataclass
class TicketMessage:
    sender_id: str
    message: str
    timestamp: datetime
    is_internal: bool = False  # staff-only note


@dataclass
class Resolution:
    resolved_by: str
    resolved_at: datetime
    note: str = "Ticket resolved"


@dataclass
class Rating:
    score: int
    rated_at: datetime
    feedback: str = ""


@dataclass
class SupportTicket:
    """A customer support ticket."""

    id: str
    ticket_number: str
    customer_id: str
    subject: str
    description: str
    category: TicketCategory
    created_at: datetime
    priority: OrderPriority = OrderPriority.MEDIUM
    status: TicketStatus = TicketStatus.OPEN
    order_id: str | None = None
    assigned_to: str | None = None
    messages: list[TicketMessage] = field(default_factory=list)
    resolution: Resolution | None = None
    rating: Rating | None = None
    tags: list[str] = field(default_factory=list)
    last_activity_at: datetime | None = None


@dataclass
class TicketPage:
    tickets: list[SupportTicket]
    total: int
    page: int
    limit: int

    @property
    def has_next(self) -> bool:
        return self.page * self.limit < self.total


@dataclass
class TicketStats:
    total: int = 0
    open: int = 0
    in_progress: int = 0
    waiting_customer: int = 0
    resolved: int = 0
    closed: int = 0
    urgent: int = 0
    high: int = 0
    this_week: int = 0  # created in the last 7 days


class TicketService:
    """Support ticket operations over the shared repository."""

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig,
        clock: Clock = utcnow,
    ) -> None:
        self.repo = repo
        self.config = config
        self.clock = clock

    def create_ticket(
        self,
        customer_id: str,
        subject: str,
        description: str,
        category: TicketCategory,
        priority: OrderPriority = OrderPriority.MEDIUM,
        order_id: str | None = None,
        tags: list[str] | None = None,
    ) -> SupportTicket:
        subject, description = subject.strip(), description.strip()
        if not subject or len(subject) > MAX_SUBJECT:
            raise ValidationError(f"Subject is required and at most {MAX_SUBJECT} characters")
        if not description or len(description) > MAX_DESCRIPTION:
            raise ValidationError(
                f"Description is required and at most {MAX_DESCRIPTION} characters"
            )
        if order_id is not None:
            self.repo.require_order(order_id)

        now = self.clock()
        ticket = SupportTicket(
            id=uuid.uuid4().hex,
            ticket_number=self.repo.next_number(TICKET_NUMBER_PREFIX),
            customer_id=customer_id,
            subject=subject,
            description=description,
            category=category,
            created_at=now,
            priority=priority,
            order_id=order_id,
            tags=list(tags or []),
            last_activity_at=now,
        )
        self.repo.add_ticket(ticket)
        logger.info("Support ticket %s opened by %s", ticket.ticket_number, customer_id)
        return ticket

    def get_ticket(
        self, ticket_id: str, viewer_id: str | None = None, staff: bool = True
    ) -> SupportTicket:
        """Customers see only their own tickets, without internal notes."""
        ticket = self.repo.require_ticket(ticket_id).value
        if not staff and ticket.customer_id != viewer_id:
            raise NotAuthorized("Not authorized to access this ticket")
        if not staff:
            ticket.messages = [m for m in ticket.messages if not m.is_internal]
        return ticket

    def list_tickets(
        self,
        status: TicketStatus | None = None,
        priority: OrderPriority | None = None,
        category: TicketCategory | None = None,
        customer_id: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> TicketPage:
        """Tickets by most recent activity, one page at a time."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")
        tickets = self.repo.tickets(
            lambda t: (status is None or t.status == status)
            and (priority is None or t.priority == priority)
            and (category is None or t.category == category)
            and (customer_id is None or t.customer_id == customer_id)
        )
        tickets.sort(key=lambda t: t.last_activity_at or t.created_at, reverse=True)
        start = (page - 1) * limit
        return TicketPage(tickets[start : start + limit], len(tickets), page, limit)

    def add_message(
        self,
        ticket_id: str,
        sender_id: str,
        message: str,
        staff: bool = False,
        is_internal: bool = False,
    ) -> SupportTicket:
        message = message.strip()
        if not message or len(message) > MAX_MESSAGE:
            raise ValidationError(f"Message is required and at most {MAX_MESSAGE} characters")
        if is_internal and not staff:
            raise NotAuthorized("Not authorized to add internal messages")

        def build(ticket: SupportTicket, now: datetime) -> SupportTicket:
            if not staff and ticket.customer_id != sender_id:
                raise NotAuthorized("Not authorized to access this ticket")
            status = ticket.status
            if ticket.customer_id == sender_id and status == TicketStatus.WAITING_CUSTOMER:
                status = TicketStatus.OPEN
            return replace(
                ticket,
                status=status,
                messages=ticket.messages + [TicketMessage(sender_id, message, now, is_internal)],
                last_activity_at=now,
            )

        return self._mutate(ticket_id, build, f"message {ticket_id}")

    def update_status(
        self,
        ticket_id: str,
        status: TicketStatus,
        updated_by: str,
        resolution_note: str | None = None,
    ) -> SupportTicket:
        def build(ticket: SupportTicket, now: datetime) -> SupportTicket:
            if status not in TICKET_TRANSITIONS[ticket.status]:
                raise InvalidStatusTransition("ticket", ticket.status.value, status.value)
            resolution = ticket.resolution
            if status in RATEABLE:
                resolution = Resolution(updated_by, now, resolution_note or "Ticket resolved")
            return replace(ticket, status=status, resolution=resolution, last_activity_at=now)

        ticket = self._mutate(ticket_id, build, f"ticket status {ticket_id}")
        logger.info("Support ticket %s is now %s", ticket.ticket_number, status.value)
        return ticket

    def assign_ticket(self, ticket_id: str, assignee_id: str) -> SupportTicket:
        """Hand the ticket to a staff member; it moves to in_progress."""

        def build(ticket: SupportTicket, now: datetime) -> SupportTicket:
            if ticket.status in RATEABLE:
                raise InvalidStatusTransition(
                    "ticket", ticket.status.value, TicketStatus.IN_PROGRESS.value
                )
            return replace(
                ticket,
                assigned_to=assignee_id,
                status=TicketStatus.IN_PROGRESS,
                last_activity_at=now,
            )

        return self._mutate(ticket_id, build, f"ticket assign {ticket_id}")

    def rate_ticket(
        self, ticket_id: str, customer_id: str, score: int, feedback: str = ""
    ) -> SupportTicket:
        if not 1 <= score <= 5:
            raise ValidationError("Rating must be between 1 and 5", score=score)

        def build(ticket: SupportTicket, now: datetime) -> SupportTicket:
            if ticket.customer_id != customer_id:
                raise NotAuthorized("Not authorized to rate this ticket")
            if ticket.status not in RATEABLE:
                raise ValidationError("Can only rate resolved tickets")
            return replace(ticket, rating=Rating(score, now, feedback))

        return self._mutate(ticket_id, build, f"ticket rate {ticket_id}")

    def stats(self) -> TicketStats:
        week_ago = self.clock() - timedelta(days=7)
        stats = TicketStats()
        for t in self.repo.tickets():
            stats.total += 1
            setattr(stats, t.status.value, getattr(stats, t.status.value) + 1)
            if t.priority == OrderPriority.URGENT:
                stats.urgent += 1
            elif t.priority == OrderPriority.HIGH:
                stats.high += 1
            if t.created_at >= week_ago:
                stats.this_week += 1
        return stats

    def _mutate(
        self,
        ticket_id: str,
        build: Callable[[SupportTicket, datetime], SupportTicket],
        label: str,
    ) -> SupportTicket:
        def attempt() -> SupportTicket:
            rec = self.repo.require_ticket(ticket_id)
            updated = build(rec.value, self.clock())
            self.repo.commit([ticket_write(rec, updated)])
            return updated

        return run_with_retries(attempt, self.config.transaction.conflict_retries, label)

"""
Typed access to orders, agents, tickets and the assignment-event log.

All datastore failures are translated into the engine's
`InfrastructureError` here, so callers only ever see the typed taxonomy
from `src.pickups.errors`. Version conflicts are passed through untouched:
the transaction layer decides whether to retry them.
"""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING, Callable, Iterable, Sequence

from src.pickups.errors import (
    AgentNotFound,
    ConflictError,
    InfrastructureError,
    OrderNotFound,
    TicketNotFound,
)
from src.pickups.models import PICKUP_AGENT_ROLE, Agent, AssignmentEvent, Order
from src.store.memory import MemoryStore, StoreUnavailable, VersionConflict, Versioned, Write

if TYPE_CHECKING:
    from src.support.tickets import SupportTicket


ORDERS = "orders"
AGENTS = "agents"
TICKETS = "support_tickets"
ASSIGNMENT_EVENTS = "assignment_events"


def _translate_store_errors(fn):
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except StoreUnavailable as exc:
            raise InfrastructureError(f"Datastore unavailable: {exc}") from exc

    return wrapper


class PickupRepository:
    """Collection-level helpers over a MemoryStore."""

    def __init__(self, store: MemoryStore | None = None) -> None:
        self.store = store or MemoryStore()

    # ── Orders ───────────────────────────────────────────────────

    @_translate_store_errors
    def get_order(self, order_id: str) -> Versioned[Order] | None:
        return self.store.get(ORDERS, order_id)

    def require_order(self, order_id: str) -> Versioned[Order]:
        rec = self.get_order(order_id)
        if rec is None:
            raise OrderNotFound(order_id)
        return rec

    @_translate_store_errors
    def orders(self, predicate: Callable[[Order], bool] | None = None) -> list[Order]:
        return [rec.value for rec in self.store.scan(ORDERS, predicate)]

    @_translate_store_errors
    def add_order(self, order: Order) -> Versioned[Order]:
        return self._insert(ORDERS, order.id, order)

    # ── Agents ───────────────────────────────────────────────────

    @_translate_store_errors
    def get_agent(self, agent_id: str) -> Versioned[Agent] | None:
        rec = self.store.get(AGENTS, agent_id)
        if rec is None or rec.value.role != PICKUP_AGENT_ROLE:
            return None
        return rec

    def require_agent(self, agent_id: str) -> Versioned[Agent]:
        rec = self.get_agent(agent_id)
        if rec is None:
            raise AgentNotFound(agent_id)
        return rec

    @_translate_store_errors
    def agents(self, predicate: Callable[[Agent], bool] | None = None) -> list[Agent]:
        return [
            rec.value
            for rec in self.store.scan(AGENTS, predicate)
            if rec.value.role == PICKUP_AGENT_ROLE
        ]

    @_translate_store_errors
    def add_agent(self, agent: Agent) -> Versioned[Agent]:
        return self._insert(AGENTS, agent.id, agent)

    # ── Tickets ──────────────────────────────────────────────────

    @_translate_store_errors
    def get_ticket(self, ticket_id: str) -> Versioned[SupportTicket] | None:
        return self.store.get(TICKETS, ticket_id)

    def require_ticket(self, ticket_id: str) -> Versioned[SupportTicket]:
        rec = self.get_ticket(ticket_id)
        if rec is None:
            raise TicketNotFound(ticket_id)
        return rec

    @_translate_store_errors
    def tickets(
        self, predicate: Callable[[SupportTicket], bool] | None = None
    ) -> list[SupportTicket]:
        return [rec.value for rec in self.store.scan(TICKETS, predicate)]

    @_translate_store_errors
    def add_ticket(self, ticket: SupportTicket) -> Versioned[SupportTicket]:
        return self._insert(TICKETS, ticket.id, ticket)

    # ── Events ───────────────────────────────────────────────────

    @_translate_store_errors
    def events(
        self, predicate: Callable[[AssignmentEvent], bool] | None = None
    ) -> list[AssignmentEvent]:
        return self.store.read_log(ASSIGNMENT_EVENTS, predicate)

    @_translate_store_errors
    def record_event(self, event: AssignmentEvent) -> None:
        """Append an audit-only event (failed attempts)."""
        self.store.append(ASSIGNMENT_EVENTS, event)

    # ── Commits / sequences ──────────────────────────────────────

    def _insert(self, collection: str, key: str, value) -> Versioned:
        try:
            return self.store.insert(collection, key, value)
        except VersionConflict as exc:
            raise ConflictError(f"{collection} record {key} already exists", key=key) from exc

    @_translate_store_errors
    def commit(
        self,
        writes: Sequence[Write],
        events: Iterable[AssignmentEvent] = (),
    ) -> None:
        """Atomically apply conditional writes together with their events."""
        self.store.commit(writes, [(ASSIGNMENT_EVENTS, e) for e in events])

    @_translate_store_errors
    def next_number(self, prefix: str) -> str:
        """Sequential human-facing number, e.g. EW000042."""
        return f"{prefix}{self.store.next_sequence(prefix):06d}"


def order_write(rec: Versioned[Order], value: Order) -> Write:
    return Write(ORDERS, rec.key, rec.version, value)


def agent_write(rec: Versioned[Agent], value: Agent) -> Write:
    return Write(AGENTS, rec.key, rec.version, value)


def ticket_write(rec: Versioned[SupportTicket], value: SupportTicket) -> Write:
    return Write(TICKETS, rec.key, rec.version, value)

"""
Order and agent lifecycle outside of assignment itself.

Orders move through:

    pending → confirmed ─┐
       └─────────────────┴→ assigned → in_transit → picked_up → processing → completed
                                 └────────────────→ picked_up (PIN verified)
    pending / confirmed / assigned / in_transit → cancelled

The `assigned` step is owned by the assignment transaction. Whenever an
order leaves an active status (assigned / in_transit / picked_up) its agent
gets the capacity slot back, in the same conditional commit as the order
change. Cancelling clears the assigned agent so that the order invariant
"agent set iff status in assigned..completed" keeps holding.
"""

from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Callable

from src.assignment.transaction import run_with_retries
from src.assignment.workload import classify_efficiency
from src.pickups.clock import Clock, start_of_month, start_of_week, utcnow
from src.pickups.errors import (
    InvalidPin,
    InvalidStatusTransition,
    NotAuthorized,
    ValidationError,
)
from src.pickups.models import (
    ACTIVE_STATUSES,
    Address,
    Agent,
    Efficiency,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    Pricing,
    TimelineEntry,
    TimeSlot,
)
from src.store.repository import agent_write, order_write

if TYPE_CHECKING:
    from src.pickups.config import EngineConfig
    from src.store.repository import PickupRepository

logger = logging.getLogger(__name__)

PINCODE_RE = re.compile(r"^[0-9]{6}$")
ORDER_NUMBER_PREFIX = "EW"

# Status changes reachable through update_status(). ASSIGNED is reached only
# through the assignment transaction.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.ASSIGNED: frozenset(
        {OrderStatus.IN_TRANSIT, OrderStatus.PICKED_UP, OrderStatus.CANCELLED}
    ),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.PICKED_UP, OrderStatus.CANCELLED}),
    OrderStatus.PICKED_UP: frozenset({OrderStatus.PROCESSING}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

NOT_CANCELLABLE = frozenset(
    {OrderStatus.PICKED_UP, OrderStatus.PROCESSING, OrderStatus.COMPLETED, OrderStatus.CANCELLED}
)


def validate_pincode(pincode: str) -> None:
    if not PINCODE_RE.match(pincode or ""):
        raise ValidationError("Pincode must be 6 digits", pincode=pincode)


def generate_pin() -> str:
    return str(100000 + secrets.randbelow(900000))


class OrderService:
    """Customer and agent-side order operations.

    Args:
        repo: Repository over the shared datastore.
        config: Engine configuration (conflict retries).
        clock: Source of timestamps.
    """

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig,
        clock: Clock = utcnow,
    ) -> None:
        self.repo = repo
        self.config = config
        self.clock = clock

    # ── Create / read ────────────────────────────────────────────

    def create_order(
        self,
        customer_id: str,
        address: Address,
        preferred_date: date,
        time_slot: TimeSlot,
        items: list[OrderItem],
        priority: OrderPriority = OrderPriority.MEDIUM,
        pickup_charges: float = 0.0,
        created_at: datetime | None = None,
        order_id: str | None = None,
    ) -> Order:
        """Place a new pickup request in status pending."""

        validate_pincode(address.pincode)
        if not address.city.strip():
            raise ValidationError("Pickup city is required")
        if not items:
            raise ValidationError("At least one item is required")
        for item in items:
            if item.quantity < 1:
                raise ValidationError("Item quantity must be at least 1", category=item.category)
            if item.estimated_price < 0:
                raise ValidationError("Item price cannot be negative", category=item.category)

        now = created_at or self.clock()
        order = Order(
            id=order_id or uuid.uuid4().hex,
            order_number=self.repo.next_number(ORDER_NUMBER_PREFIX),
            customer_id=customer_id,
            address=address,
            preferred_date=preferred_date,
            time_slot=time_slot,
            items=list(items),
            pricing=Pricing(
                estimated_total=round(sum(i.quantity * i.estimated_price for i in items), 2),
                pickup_charges=pickup_charges,
            ),
            created_at=now,
            priority=priority,
            pin=generate_pin(),
            timeline=[TimelineEntry(OrderStatus.PENDING, now, customer_id, "Order created")],
            updated_at=now,
        )
        self.repo.add_order(order)
        logger.info("Created order %s in %s", order.order_number, address.city)
        return order

    def get_order(self, order_id: str) -> Order:
        return self.repo.require_order(order_id).value

    def list_orders(
        self,
        status: OrderStatus | None = None,
        customer_id: str | None = None,
    ) -> list[Order]:
        """Orders newest first, optionally filtered."""
        orders = self.repo.orders(
            lambda o: (status is None or o.status == status)
            and (customer_id is None or o.customer_id == customer_id)
        )
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    def assigned_orders(self, agent_id: str) -> list[Order]:
        """Orders currently held by an agent, newest first."""
        self.repo.require_agent(agent_id)
        orders = self.repo.orders(
            lambda o: o.assigned_agent_id == agent_id and o.status in ACTIVE_STATUSES
        )
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    # ── Mutations ────────────────────────────────────────────────

    def update_status(
        self,
        order_id: str,
        status: OrderStatus,
        updated_by: str,
        note: str | None = None,
        actual_total: float | None = None,
        acting_agent_id: str | None = None,
    ) -> Order:
        """Move an order along its lifecycle.

        When `acting_agent_id` is given the caller is a pickup agent and may
        only touch orders it holds.
        """
        if status == OrderStatus.ASSIGNED:
            raise ValidationError("Use the assignment endpoints to assign an order")
        if status == OrderStatus.CANCELLED:
            return self.cancel_order(
                order_id, updated_by, note, acting_agent_id=acting_agent_id
            )

        def build(order: Order, now: datetime) -> Order:
            if acting_agent_id is not None and order.assigned_agent_id != acting_agent_id:
                raise NotAuthorized("Not authorized to update this order")
            self._check_transition(order, status)
            pricing = order.pricing
            completed_at = order.completed_at
            if status == OrderStatus.COMPLETED:
                completed_at = now
                if actual_total is not None:
                    pricing = replace(
                        pricing,
                        actual_total=actual_total,
                        final_amount=actual_total + pricing.pickup_charges,
                    )
            return replace(
                order,
                status=status,
                pricing=pricing,
                completed_at=completed_at,
                updated_at=now,
                timeline=order.timeline
                + [
                    TimelineEntry(
                        status, now, updated_by, note or f"Status updated to {status.value}"
                    )
                ],
            )

        order = self._mutate(order_id, build, f"status {order_id} → {status.value}")
        logger.info("Order %s is now %s", order.order_number, status.value)
        return order

    def cancel_order(
        self,
        order_id: str,
        cancelled_by: str,
        reason: str | None = None,
        customer_id: str | None = None,
        acting_agent_id: str | None = None,
    ) -> Order:
        """Cancel an order that has not been picked up yet.

        A `customer_id` restricts the cancel to that customer's own orders and
        an `acting_agent_id` to orders that agent holds. Staff pass neither.
        """

        def build(order: Order, now: datetime) -> Order:
            if customer_id is not None and order.customer_id != customer_id:
                raise NotAuthorized("Not authorized to cancel this order")
            if acting_agent_id is not None and order.assigned_agent_id != acting_agent_id:
                raise NotAuthorized("Not authorized to update this order")
            if order.status in NOT_CANCELLABLE:
                raise InvalidStatusTransition(
                    "order", order.status.value, OrderStatus.CANCELLED.value
                )
            return replace(
                order,
                status=OrderStatus.CANCELLED,
                assigned_agent_id=None,
                updated_at=now,
                timeline=order.timeline
                + [
                    TimelineEntry(
                        OrderStatus.CANCELLED, now, cancelled_by, reason or "Order cancelled"
                    )
                ],
            )

        order = self._mutate(order_id, build, f"cancel {order_id}")
        logger.info("Order %s cancelled by %s", order.order_number, cancelled_by)
        return order

    def verify_pickup_pin(self, order_id: str, agent_id: str, pin: str) -> Order:
        """Agent confirms the customer's PIN at pickup; the order becomes picked_up."""

        def build(order: Order, now: datetime) -> Order:
            if order.assigned_agent_id != agent_id:
                raise NotAuthorized("Not authorized to verify this order")
            self._check_transition(order, OrderStatus.PICKED_UP)
            if not secrets.compare_digest(order.pin, pin or ""):
                raise InvalidPin()
            return replace(
                order,
                status=OrderStatus.PICKED_UP,
                pin_verified=True,
                updated_at=now,
                timeline=order.timeline
                + [
                    TimelineEntry(
                        OrderStatus.PICKED_UP, now, agent_id, "PIN verified and items picked up"
                    )
                ],
            )

        return self._mutate(order_id, build, f"verify {order_id}")

    def update_priority(self, order_id: str, priority: OrderPriority) -> Order:
        def build(order: Order, now: datetime) -> Order:
            return replace(order, priority=priority, updated_at=now)

        return self._mutate(order_id, build, f"priority {order_id}")

    # ── Internals ────────────────────────────────────────────────

    @staticmethod
    def _check_transition(order: Order, target: OrderStatus) -> None:
        if target not in ORDER_TRANSITIONS[order.status]:
            raise InvalidStatusTransition("order", order.status.value, target.value)

    def _mutate(
        self,
        order_id: str,
        build: Callable[[Order, datetime], Order],
        label: str,
    ) -> Order:
        """Read → build → conditional commit, releasing the agent slot if needed."""

        def attempt() -> Order:
            rec = self.repo.require_order(order_id)
            before = rec.value
            after = build(before, self.clock())
            writes = [order_write(rec, after)]
            if before.holds_capacity and not (
                after.holds_capacity and after.assigned_agent_id == before.assigned_agent_id
            ):
                agent_rec = self.repo.get_agent(before.assigned_agent_id)
                if agent_rec is not None:
                    agent = agent_rec.value
                    writes.append(
                        agent_write(
                            agent_rec,
                            replace(agent, active_orders=max(0, agent.active_orders - 1)),
                        )
                    )
            self.repo.commit(writes)
            return after

        return run_with_retries(attempt, self.config.transaction.conflict_retries, label)


@dataclass
class AgentPerformanceReport:
    """Performance detail of one agent."""

    agent: Agent
    total_assigned: int
    total_completed: int
    completion_rate: float  # percent, 2 decimals
    monthly_completed: int
    weekly_completed: int
    active_orders: int
    efficiency: Efficiency
    status: str


class AgentService:
    """Pickup-agent registration, activation and performance."""

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig,
        clock: Clock = utcnow,
    ) -> None:
        self.repo = repo
        self.config = config
        self.clock = clock

    def register_agent(
        self,
        first_name: str,
        last_name: str,
        address: Address,
        email: str = "",
        phone: str = "",
        max_capacity: int | None = None,
        agent_id: str | None = None,
        is_active: bool = True,
    ) -> Agent:
        validate_pincode(address.pincode)
        capacity = self.config.capacity.max_capacity if max_capacity is None else max_capacity
        if capacity < 1:
            raise ValidationError("max_capacity must be at least 1", max_capacity=capacity)
        agent = Agent(
            id=agent_id or uuid.uuid4().hex,
            first_name=first_name,
            last_name=last_name,
            address=address,
            email=email,
            phone=phone,
            is_active=is_active,
            max_capacity=capacity,
            created_at=self.clock(),
        )
        self.repo.add_agent(agent)
        logger.info("Registered pickup agent %s (%s)", agent.full_name, address.city)
        return agent

    def get_agent(self, agent_id: str) -> Agent:
        return self.repo.require_agent(agent_id).value

    def set_active(self, agent_id: str, active: bool) -> Agent:
        """Enable / disable an agent. Disabled agents keep their current orders."""

        def attempt() -> Agent:
            rec = self.repo.require_agent(agent_id)
            updated = replace(rec.value, is_active=active)
            self.repo.commit([agent_write(rec, updated)])
            return updated

        agent = run_with_retries(
            attempt, self.config.transaction.conflict_retries, f"set_active {agent_id}"
        )
        logger.info("Pickup agent %s active=%s", agent_id, active)
        return agent

    def performance(self, agent_id: str) -> AgentPerformanceReport:
        """Totals over every order ever assigned to the agent.

        Assignments are counted from the event log, so orders later cancelled
        or reassigned away still count against the agent.
        """
        agent = self.repo.require_agent(agent_id).value
        assigned_ids = {
            e.order_id for e in self.repo.events(lambda e: e.success and e.agent_id == agent_id)
        }
        now = self.clock()
        month_start, week_start = start_of_month(now), start_of_week(now)

        completed = self.repo.orders(
            lambda o: o.status == OrderStatus.COMPLETED and o.assigned_agent_id == agent_id
        )
        total = len(assigned_ids | {o.id for o in completed})
        rate = round(len(completed) / total * 100, 2) if total else 0.0
        return AgentPerformanceReport(
            agent=agent,
            total_assigned=total,
            total_completed=len(completed),
            completion_rate=rate,
            monthly_completed=sum(
                1 for o in completed if o.completed_at and o.completed_at >= month_start
            ),
            weekly_completed=sum(
                1 for o in completed if o.completed_at and o.completed_at >= week_start
            ),
            active_orders=agent.active_orders,
            efficiency=classify_efficiency(len(completed), total, self.config.performance),
            status=(
                "busy"
                if agent.active_orders > self.config.performance.busy_active_orders
                else "available"
            ),
        )

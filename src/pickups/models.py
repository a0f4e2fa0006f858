"""
Pickup order, agent and assignment-event models.

Design decisions:
- Records are plain dataclasses. The datastore hands out copies, so a model
  instance is a snapshot: changing one never changes persisted state until
  it is written back through a conditional commit.
- An agent's `active_orders` counter is persisted on the agent record and
  only moves through conditional writes (assignment increments it, the
  order-release hook decrements it).
- Assignment events are append-only and written in the same commit as the
  state change they describe, so statistics derived from them cannot drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class OrderStatus(Enum):
    """Valid order status"""

    PENDING = "pending"  # Placed, waiting for confirmation
    CONFIRMED = "confirmed"  # Confirmed, pickup scheduled
    ASSIGNED = "assigned"  # Pickup agent assigned
    IN_TRANSIT = "in_transit"  # Agent on the way
    PICKED_UP = "picked_up"  # Items collected
    PROCESSING = "processing"  # Items being evaluated
    COMPLETED = "completed"  # Payment processed
    CANCELLED = "cancelled"


# Orders waiting for an agent.
UNASSIGNED_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Orders occupying one of the agent's capacity slots.
ACTIVE_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.IN_TRANSIT, OrderStatus.PICKED_UP})

# Orders that must carry an assigned agent.
ASSIGNED_STATUSES = ACTIVE_STATUSES | {OrderStatus.PROCESSING, OrderStatus.COMPLETED}

TERMINAL_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class TimeSlot(Enum):
    """Valid pickup time slots"""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class OrderPriority(Enum):
    """Valid order priorities"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ItemCondition(Enum):
    """Reported condition of an e-waste item"""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    BROKEN = "broken"


class AvailabilityStatus(Enum):
    """Agent availability derived from the load ratio"""

    AVAILABLE = "available"
    BUSY = "busy"
    OVERLOADED = "overloaded"


class Efficiency(Enum):
    """Agent efficiency derived from completed / assigned"""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EventKind(Enum):
    """Kinds of assignment event"""

    ASSIGN = "assign"
    REASSIGN = "reassign"


AUTO_ASSIGNER = "auto"  # assigned_by value for auto-assignment runs
PICKUP_AGENT_ROLE = "pickup_boy"


@dataclass
class Address:
    """Postal address used for pickups and agent service areas."""

    city: str
    pincode: str
    street: str = ""
    state: str = ""
    landmark: str | None = None


@dataclass
class OrderItem:
    """One line of an order."""

    category: str
    condition: ItemCondition
    quantity: int
    estimated_price: float
    final_price: float = 0.0


@dataclass
class Pricing:
    """Order totals."""

    estimated_total: float
    actual_total: float = 0.0
    pickup_charges: float = 0.0
    final_amount: float = 0.0


@dataclass
class TimelineEntry:
    """A status change recorded on the order."""

    status: OrderStatus
    timestamp: datetime
    updated_by: str | None = None
    note: str = ""


@dataclass
class Order:
    """A customer pickup request.

    Attributes:
        id: Unique order identifier.
        order_number: Human-facing number (EW000001).
        customer_id: Requesting customer.
        address: Pickup address.
        preferred_date: Day the customer wants the pickup.
        time_slot: Morning, afternoon or evening.
        items: Items to collect.
        pricing: Estimated / final totals.
        status: Current lifecycle status.
        priority: Handling priority.
        assigned_agent_id: Agent holding the order, None while unassigned.
        pin: 6-digit code the agent verifies at pickup.
        pin_verified: Whether the PIN has been verified.
        timeline: Status history.
        created_at: When the order was placed.
        updated_at: Last mutation.
        assigned_at: Last successful (re)assignment.
        completed_at: When the order reached completed.
    """

    id: str
    order_number: str
    customer_id: str
    address: Address
    preferred_date: date
    time_slot: TimeSlot
    items: list[OrderItem]
    pricing: Pricing
    created_at: datetime
    status: OrderStatus = OrderStatus.PENDING
    priority: OrderPriority = OrderPriority.MEDIUM
    assigned_agent_id: str | None = None
    pin: str = ""
    pin_verified: bool = False
    timeline: list[TimelineEntry] = field(default_factory=list)
    updated_at: datetime | None = None
    assigned_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def awaiting_assignment(self) -> bool:
        """True while the order can take its first agent."""
        return self.assigned_agent_id is None and self.status in UNASSIGNED_STATUSES

    @property
    def holds_capacity(self) -> bool:
        """True while the order occupies a slot on its agent."""
        return self.assigned_agent_id is not None and self.status in ACTIVE_STATUSES

    @property
    def revenue(self) -> float:
        return self.pricing.final_amount or self.pricing.estimated_total


@dataclass
class Agent:
    """A pickup agent ("pickup boy").

    Attributes:
        id: Unique identifier.
        first_name / last_name: Display name.
        email / phone: Contact details.
        address: Service address; its city/pincode define the agent's region.
        role: Always "pickup_boy" for assignable agents.
        is_active: Disabled agents never receive new orders.
        active_orders: Persisted count of orders in an active status.
        max_capacity: Ceiling for active_orders.
    """

    id: str
    first_name: str
    last_name: str
    address: Address
    email: str = ""
    phone: str = ""
    role: str = PICKUP_AGENT_ROLE
    is_active: bool = True
    active_orders: int = 0
    max_capacity: int = 8
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass
class AssignmentEvent:
    """One assignment attempt, appended to the audit log.

    Successful events are committed atomically with the order/agent writes;
    failed attempts are appended afterwards for auditing only.
    """

    order_id: str
    agent_id: str
    assigned_by: str
    timestamp: datetime
    previous_status: OrderStatus | None
    kind: EventKind = EventKind.ASSIGN
    success: bool = True
    reason: str | None = None
    previous_agent_id: str | None = None

    @property
    def is_auto(self) -> bool:
        return self.assigned_by == AUTO_ASSIGNER

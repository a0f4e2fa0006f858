"""
Seed a repository from a YAML fixtures file.

Format:
    agents:
      - id: agent-pune-1
        first_name: Ravi
        last_name: Patil
        max_capacity: 8            # optional, config default otherwise
        is_active: true            # optional
        address: {city: Pune, pincode: "411001"}
    orders:
      - id: order-1                # optional
        customer_id: cust-1
        address: {city: Pune, pincode: "411038", street: "FC Road"}
        preferred_in_days: 1       # or preferred_date: 2026-05-01
        time_slot: morning
        priority: high             # optional
        created_minutes_ago: 90    # optional, backdates created_at
        items:
          - {category: laptop, condition: good, quantity: 1, estimated_price: 2500}
        assign_to: agent-pune-1    # optional, assigned through the engine

Orders are created through the services, so seeded data obeys the same
invariants as live data.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from src.pickups.models import Address, ItemCondition, OrderItem, OrderPriority, TimeSlot

if TYPE_CHECKING:
    from src.assignment.engine import AssignmentEngine
    from src.pickups.lifecycle import AgentService, OrderService

logger = logging.getLogger(__name__)


def _address(raw: dict) -> Address:
    return Address(
        city=str(raw["city"]),
        pincode=str(raw["pincode"]),
        street=str(raw.get("street", "")),
        state=str(raw.get("state", "")),
        landmark=raw.get("landmark"),
    )


def _preferred_date(raw: dict, today: date) -> date:
    value = raw.get("preferred_date")
    if value is None:
        return today + timedelta(days=int(raw.get("preferred_in_days", 1)))
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def load_fixtures(
    path: str | Path,
    orders: OrderService,
    agents: AgentService,
    engine: AssignmentEngine | None = None,
) -> tuple[int, int]:
    """Create the agents and orders listed in `path`.

    Returns:
        (agents created, orders created)
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    for a in raw.get("agents", []):
        agents.register_agent(
            first_name=a["first_name"],
            last_name=a.get("last_name", ""),
            address=_address(a["address"]),
            email=a.get("email", ""),
            phone=str(a.get("phone", "")),
            max_capacity=a.get("max_capacity"),
            agent_id=a.get("id"),
            is_active=a.get("is_active", True),
        )

    now = orders.clock()
    for o in raw.get("orders", []):
        created_at = None
        if "created_minutes_ago" in o:
            created_at = now - timedelta(minutes=float(o["created_minutes_ago"]))
        order = orders.create_order(
            customer_id=o["customer_id"],
            address=_address(o["address"]),
            preferred_date=_preferred_date(o, now.date()),
            time_slot=TimeSlot(o.get("time_slot", "morning")),
            items=[
                OrderItem(
                    category=i["category"],
                    condition=ItemCondition(i.get("condition", "good")),
                    quantity=int(i.get("quantity", 1)),
                    estimated_price=float(i.get("estimated_price", 0)),
                )
                for i in o["items"]
            ],
            priority=OrderPriority(o.get("priority", "medium")),
            created_at=created_at,
            order_id=o.get("id"),
        )
        if o.get("assign_to") and engine is not None:
            engine.assign(order.id, o["assign_to"], assigned_by="fixtures")

    n_agents, n_orders = len(raw.get("agents", [])), len(raw.get("orders", []))
    logger.info("Loaded %d agents and %d orders from %s", n_agents, n_orders, path)
    return n_agents, n_orders

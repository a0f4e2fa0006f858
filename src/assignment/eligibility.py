"""
Eligibility filter: which agents may legally take a given order.

An agent is eligible when it is active, has spare capacity and serves the
order's pickup region. The region rule is a deployment choice:

    city            case-insensitive equality of the city names (default)
    pincode         exact pincode equality
    pincode_prefix  the first `pincode_prefix_length` digits match

No eligible agent is not an error; callers get an empty list.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.pickups.models import Address, Order

if TYPE_CHECKING:
    from src.assignment.workload import AgentWorkload
    from src.pickups.config import EligibilityConfig


def _norm(value: str | None) -> str:
    return (value or "").strip().lower()


def same_region(order_address: Address, agent_address: Address, cfg: EligibilityConfig) -> bool:
    """Apply the configured geographic rule to two addresses."""

    if cfg.region_policy == "pincode":
        return bool(order_address.pincode) and order_address.pincode == agent_address.pincode
    if cfg.region_policy == "pincode_prefix":
        n = cfg.pincode_prefix_length
        a, b = order_address.pincode or "", agent_address.pincode or ""
        return len(a) >= n and len(b) >= n and a[:n] == b[:n]
    city = _norm(order_address.city)
    return bool(city) and city == _norm(agent_address.city)


def is_eligible(order: Order, candidate: AgentWorkload, cfg: EligibilityConfig) -> bool:
    agent = candidate.agent
    return (
        agent.is_active
        and candidate.workload.can_take_new_order
        and same_region(order.address, agent.address, cfg)
    )


def eligible_agents(
    order: Order,
    candidates: list[AgentWorkload],
    cfg: EligibilityConfig,
) -> list[AgentWorkload]:
    """Subset of `candidates` able to take `order`, in input order."""

    return [c for c in candidates if is_eligible(order, c, cfg)]

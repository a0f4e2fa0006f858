"""
Workload tracking for pickup agents.

Reads only. The persisted `Agent.active_orders` counter is the source of
truth for load; today's orders, weekly completions and efficiency are
derived from a single scan of the orders collection so that the batched
availability query costs one pass regardless of how many agents match.

Availability is a monotonic function of the load ratio
active_orders / max_capacity:

    ratio <= available_ratio   → available
    ratio <  overloaded_ratio  → busy
    otherwise                  → overloaded
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING

from src.pickups.clock import Clock, start_of_week, utcnow
from src.pickups.models import (
    Agent,
    AssignmentEvent,
    AvailabilityStatus,
    Efficiency,
    Order,
    OrderStatus,
)

if TYPE_CHECKING:
    from src.pickups.config import CapacityConfig, EngineConfig, PerformanceConfig
    from src.store.repository import PickupRepository


@dataclass
class Workload:
    """Current load of one agent."""

    active_orders: int
    today_orders: int
    week_completed_orders: int
    max_capacity: int
    availability_status: AvailabilityStatus
    can_take_new_order: bool

    @property
    def load_ratio(self) -> float:
        return self.active_orders / self.max_capacity if self.max_capacity > 0 else 1.0


@dataclass
class Performance:
    """Completion record of one agent."""

    weekly_completions: int
    total_assigned: int
    total_completed: int
    efficiency: Efficiency


@dataclass
class AgentWorkload:
    """An agent together with its derived workload and performance."""

    agent: Agent
    workload: Workload
    performance: Performance

    @property
    def agent_id(self) -> str:
        return self.agent.id


@dataclass
class AvailabilitySummary:
    available: int = 0
    busy: int = 0
    overloaded: int = 0
    can_take_orders: int = 0


def classify_availability(
    active_orders: int, max_capacity: int, cfg: CapacityConfig
) -> AvailabilityStatus:
    """Map a load onto available / busy / overloaded."""
    if max_capacity <= 0:
        return AvailabilityStatus.OVERLOADED
    ratio = active_orders / max_capacity
    if ratio <= cfg.available_ratio:
        return AvailabilityStatus.AVAILABLE
    if ratio < cfg.overloaded_ratio:
        return AvailabilityStatus.BUSY
    return AvailabilityStatus.OVERLOADED


def classify_efficiency(completed: int, assigned: int, cfg: PerformanceConfig) -> Efficiency:
    """Efficiency on completed / assigned. Agents with no history are medium."""
    if assigned <= 0:
        return Efficiency.MEDIUM
    ratio = completed / assigned
    if ratio >= cfg.high_efficiency_ratio:
        return Efficiency.HIGH
    if ratio >= cfg.medium_efficiency_ratio:
        return Efficiency.MEDIUM
    return Efficiency.LOW


def matches_area(agent: Agent, city: str | None, pincode: str | None) -> bool:
    """Listing filter: case-insensitive city, exact pincode."""
    if city and agent.address.city.strip().lower() != city.strip().lower():
        return False
    if pincode and agent.address.pincode != pincode:
        return False
    return True


class WorkloadTracker:
    """Derives per-agent workload from the agent counters and the order history.

    Usage:
        tracker = WorkloadTracker(repo, config)
        tracker.get_workload("agent-1").availability_status
        agents, summary = tracker.availability(city="Pune")
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

    def get_workload(self, agent_id: str) -> Workload:
        return self.get_agent_workload(agent_id).workload

    def get_agent_workload(self, agent_id: str) -> AgentWorkload:
        agent = self.repo.require_agent(agent_id).value
        orders = self.repo.orders(lambda o: o.assigned_agent_id == agent_id)
        events = self.repo.events(lambda e: e.success and e.agent_id == agent_id)
        return self._build([agent], orders, events)[0]

    def availability(
        self,
        city: str | None = None,
        pincode: str | None = None,
        include_inactive: bool = False,
    ) -> tuple[list[AgentWorkload], AvailabilitySummary]:
        """Batched workload for every agent in an area.

        Returns agents sorted available-first, then by ascending active load,
        plus the status summary.
        """
        agents = self.repo.agents(
            lambda a: (include_inactive or a.is_active) and matches_area(a, city, pincode)
        )
        agent_ids = {a.id for a in agents}
        orders = self.repo.orders(lambda o: o.assigned_agent_id in agent_ids)
        events = self.repo.events(lambda e: e.success and e.agent_id in agent_ids)
        rows = self._build(agents, orders, events)

        rows.sort(
            key=lambda r: (
                r.workload.availability_status != AvailabilityStatus.AVAILABLE,
                r.workload.active_orders,
                r.agent.id,
            )
        )

        summary = AvailabilitySummary()
        for row in rows:
            status = row.workload.availability_status
            if status == AvailabilityStatus.AVAILABLE:
                summary.available += 1
            elif status == AvailabilityStatus.BUSY:
                summary.busy += 1
            else:
                summary.overloaded += 1
            if row.workload.can_take_new_order:
                summary.can_take_orders += 1
        return rows, summary

    def _build(
        self, agents: list[Agent], orders: list[Order], events: list[AssignmentEvent]
    ) -> list[AgentWorkload]:
        now = self.clock()
        today = now.date()
        week_start = start_of_week(now)

        today_counts: dict[str, int] = defaultdict(int)
        week_completed: dict[str, int] = defaultdict(int)
        assigned_ids: dict[str, set[str]] = defaultdict(set)
        total_completed: dict[str, int] = defaultdict(int)

        for order in orders:
            agent_id = order.assigned_agent_id
            if agent_id is None:
                continue
            assigned_ids[agent_id].add(order.id)
            if order.preferred_date == today:
                today_counts[agent_id] += 1
            if order.status == OrderStatus.COMPLETED:
                total_completed[agent_id] += 1
                if order.completed_at is not None and order.completed_at >= week_start:
                    week_completed[agent_id] += 1

        # orders cancelled or reassigned away still count against the agent
        for event in events:
            assigned_ids[event.agent_id].add(event.order_id)

        cap_cfg = self.config.capacity
        perf_cfg = self.config.performance
        rows = []
        for agent in agents:
            total_assigned = len(assigned_ids[agent.id])
            workload = Workload(
                active_orders=agent.active_orders,
                today_orders=today_counts[agent.id],
                week_completed_orders=week_completed[agent.id],
                max_capacity=agent.max_capacity,
                availability_status=classify_availability(
                    agent.active_orders, agent.max_capacity, cap_cfg
                ),
                can_take_new_order=agent.active_orders < agent.max_capacity,
            )
            performance = Performance(
                weekly_completions=week_completed[agent.id],
                total_assigned=total_assigned,
                total_completed=total_completed[agent.id],
                efficiency=classify_efficiency(
                    total_completed[agent.id], total_assigned, perf_cfg
                ),
            )
            rows.append(AgentWorkload(agent, workload, performance))
        return rows

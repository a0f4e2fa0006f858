"""
Assignment engine: the top-level entry point.

Wires together the workload tracker, eligibility filter, assignment policy,
transaction, batch orchestrator and statistics aggregator over one shared
repository. The engine keeps no state of its own between calls; any number
of engines (or API worker threads) can share the same datastore.

Usage:
    engine = AssignmentEngine(PickupRepository(), EngineConfig())
    engine.assign("order-1", "agent-7", assigned_by="admin-1")
    result = engine.auto_assign(city="Pune", max_assignments=20)
    print(f"Auto-assigned {result.assigned} orders")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable

from src.assignment.eligibility import eligible_agents
from src.assignment.notifications import LoggingNotifier, Notifier
from src.assignment.orchestrator import (
    AutoAssignResult,
    BatchOrchestrator,
    BulkResult,
    find_pending_orders,
)
from src.assignment.policy import Scorer, load_first_score, rank_agents
from src.assignment.statistics import (
    AssignmentAnalytics,
    AssignmentStatistics,
    StatisticsAggregator,
)
from src.assignment.transaction import Assignment, AssignmentTransaction
from src.assignment.workload import (
    AgentWorkload,
    AvailabilitySummary,
    Workload,
    WorkloadTracker,
)
from src.pickups.clock import Clock, utcnow
from src.pickups.config import EngineConfig
from src.pickups.models import Order, TimeSlot
from src.store.repository import PickupRepository

logger = logging.getLogger(__name__)


@dataclass
class Suggestion:
    """Manual-assignment helper: best agent plus the ranked alternatives."""

    order: Order
    selected: AgentWorkload | None
    ranked: list[AgentWorkload]


class AssignmentEngine:
    """Facade over the assignment components.

    Args:
        repo: Repository over the shared datastore.
        config: Engine configuration.
        notifier: Notification sink; defaults to logging.
        clock: Source of timestamps.
        scorer: Policy key used for auto-assignment and suggestions.
    """

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig | None = None,
        notifier: Notifier | None = None,
        clock: Clock = utcnow,
        scorer: Scorer = load_first_score,
    ) -> None:
        self.repo = repo
        self.config = config or EngineConfig()
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock
        self.scorer = scorer

        self.tracker = WorkloadTracker(repo, self.config, clock)
        self.transaction = AssignmentTransaction(repo, self.config, self.notifier, clock)
        self.orchestrator = BatchOrchestrator(
            repo, self.config, self.transaction, self.tracker, scorer
        )
        self.statistics = StatisticsAggregator(repo, clock)

    # ── Reads ────────────────────────────────────────────────────

    def get_workload(self, agent_id: str) -> Workload:
        return self.tracker.get_workload(agent_id)

    def availability(
        self, city: str | None = None, pincode: str | None = None
    ) -> tuple[list[AgentWorkload], AvailabilitySummary]:
        return self.tracker.availability(city=city, pincode=pincode)

    def pending_orders(
        self,
        city: str | None = None,
        pincode: str | None = None,
        time_slot: TimeSlot | None = None,
        preferred_date: date | None = None,
    ) -> list[Order]:
        return find_pending_orders(self.repo, city, pincode, time_slot, preferred_date)

    def eligible_agents(self, order_id: str) -> list[AgentWorkload]:
        order = self.repo.require_order(order_id).value
        candidates, _ = self.tracker.availability()
        return eligible_agents(order, candidates, self.config.eligibility)

    def suggest_agent(self, order_id: str) -> Suggestion:
        """Rank the eligible agents for one order (manual-suggestion mode)."""
        order = self.repo.require_order(order_id).value
        candidates, _ = self.tracker.availability()
        ranked = rank_agents(
            order, eligible_agents(order, candidates, self.config.eligibility), self.scorer
        )
        return Suggestion(order, ranked[0] if ranked else None, ranked)

    def get_statistics(self, timeframe: str = "today") -> AssignmentStatistics:
        return self.statistics.get_statistics(timeframe)

    def get_analytics(self, period: str = "month") -> AssignmentAnalytics:
        return self.statistics.get_analytics(period)

    # ── Writes ───────────────────────────────────────────────────

    def assign(self, order_id: str, agent_id: str, assigned_by: str) -> Assignment:
        return self.transaction.assign(order_id, agent_id, assigned_by)

    def reassign(
        self,
        order_id: str,
        new_agent_id: str,
        reason: str | None = None,
        reassigned_by: str = "admin",
    ) -> Assignment:
        return self.transaction.reassign(order_id, new_agent_id, reason, reassigned_by)

    def bulk_assign(self, pairs: list[tuple[str, str]], assigned_by: str) -> BulkResult:
        return self.orchestrator.bulk_assign(pairs, assigned_by)

    def auto_assign(
        self,
        city: str | None = None,
        pincode: str | None = None,
        max_assignments: int | None = None,
        stop_requested: Callable[[], bool] | None = None,
        deadline_s: float | None = None,
    ) -> AutoAssignResult:
        return self.orchestrator.auto_assign(
            city=city,
            pincode=pincode,
            max_assignments=max_assignments,
            stop_requested=stop_requested,
            deadline_s=deadline_s,
        )

    def notify_assignment(self, agent_id: str, order_id: str) -> None:
        """Re-send the assignment notification for one order.

        Unlike the post-commit send, errors here propagate to the caller.
        """
        agent = self.repo.require_agent(agent_id).value
        order = self.repo.require_order(order_id).value
        self.notifier.notify_assignment(agent, order)

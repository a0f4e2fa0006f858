"""
Batch orchestration: bulk and automatic assignment.

Both modes drive the assignment transaction one order at a time. A failure
on one order never aborts the batch; it is recorded with its error code and
the run moves on. Each per-order transaction is atomic on its own, so a
batch can be interrupted between orders without leaving half-applied state.

Auto-assignment processes pending orders oldest-first (fairness), picks an
agent with eligibility + policy, and stops once `max_assignments` orders
were assigned, the queue is exhausted, or the caller asks it to stop
(`stop_requested` callable or `deadline_s` budget). A stop request is
checked before each order, so an in-flight transaction always completes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Callable, Iterable

from src.assignment.eligibility import eligible_agents
from src.assignment.policy import Scorer, load_first_score, rank_agents
from src.pickups.errors import (
    AgentAtCapacity,
    AgentNotEligible,
    AgentNotFound,
    AssignmentError,
    ValidationError,
)
from src.pickups.models import AUTO_ASSIGNER, Order, TimeSlot

if TYPE_CHECKING:
    from src.assignment.transaction import AssignmentTransaction
    from src.assignment.workload import AgentWorkload, WorkloadTracker
    from src.pickups.config import EngineConfig
    from src.store.repository import PickupRepository

logger = logging.getLogger(__name__)

NO_ELIGIBLE_AGENT = "NoEligibleAgent"


# ─────────────────────────────────────────────────────────────────────────────
# Result types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class BulkItemResult:
    """Outcome for one (order, agent) pair of a bulk request."""

    order_id: str
    agent_id: str
    success: bool
    order_number: str | None = None
    error: str | None = None
    code: str | None = None
    retryable: bool = False


@dataclass
class BulkResult:
    """Bulk assignment outcome. `failed > 0` is a partial failure, not an error."""

    results: list[BulkItemResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def errors(self) -> list[BulkItemResult]:
        return [r for r in self.results if not r.success]


@dataclass
class AutoAssignment:
    order_id: str
    order_number: str
    agent_id: str
    agent_name: str


@dataclass
class SkippedOrder:
    order_id: str
    order_number: str
    reason: str


@dataclass
class AutoAssignResult:
    """Auto-assignment outcome."""

    assignments: list[AutoAssignment] = field(default_factory=list)
    skipped: list[SkippedOrder] = field(default_factory=list)
    stopped: bool = False  # True when cancelled or out of time before finishing
    warnings: list[str] = field(default_factory=list)

    @property
    def assigned(self) -> int:
        return len(self.assignments)


# ─────────────────────────────────────────────────────────────────────────────
# Pending-order query
# ─────────────────────────────────────────────────────────────────────────────


def find_pending_orders(
    repo: PickupRepository,
    city: str | None = None,
    pincode: str | None = None,
    time_slot: TimeSlot | None = None,
    preferred_date: date | None = None,
) -> list[Order]:
    """Unassigned pending/confirmed orders, oldest first."""

    city_key = city.strip().lower() if city else None

    def _match(order: Order) -> bool:
        if not order.awaiting_assignment:
            return False
        if city_key and order.address.city.strip().lower() != city_key:
            return False
        if pincode and order.address.pincode != pincode:
            return False
        if time_slot and order.time_slot != time_slot:
            return False
        if preferred_date and order.preferred_date != preferred_date:
            return False
        return True

    orders = repo.orders(_match)
    orders.sort(key=lambda o: (o.created_at, o.id))
    return orders


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ─────────────────────────────────────────────────────────────────────────────


class BatchOrchestrator:
    """Runs bulk and auto assignment on top of the transaction.

    Args:
        repo: Repository over the shared datastore.
        config: Engine configuration.
        transaction: Per-order atomic assignment.
        tracker: Workload source for eligibility and scoring.
        scorer: Assignment policy key (lower wins).
    """

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig,
        transaction: AssignmentTransaction,
        tracker: WorkloadTracker,
        scorer: Scorer = load_first_score,
    ) -> None:
        self.repo = repo
        self.config = config
        self.transaction = transaction
        self.tracker = tracker
        self.scorer = scorer

    # ── Bulk ─────────────────────────────────────────────────────

    def bulk_assign(self, pairs: Iterable[tuple[str, str]], assigned_by: str) -> BulkResult:
        """Assign each (order_id, agent_id) pair independently.

        Raises:
            ValidationError: only for a malformed request (no pairs).
        """
        pairs = list(pairs)
        if not pairs:
            raise ValidationError("No assignments provided")

        result = BulkResult()
        for order_id, agent_id in pairs:
            try:
                assignment = self.transaction.assign(order_id, agent_id, assigned_by)
            except AssignmentError as exc:
                result.results.append(
                    BulkItemResult(
                        order_id=order_id,
                        agent_id=agent_id,
                        success=False,
                        error=exc.message,
                        code=exc.code,
                        retryable=exc.retryable,
                    )
                )
                continue
            result.results.append(
                BulkItemResult(
                    order_id=order_id,
                    agent_id=agent_id,
                    success=True,
                    order_number=assignment.order.order_number,
                )
            )
            result.warnings.extend(assignment.warnings)

        logger.info(
            "Bulk assignment by %s: %d successful, %d failed",
            assigned_by,
            result.successful,
            result.failed,
        )
        return result

    # ── Auto ─────────────────────────────────────────────────────

    def auto_assign(
        self,
        city: str | None = None,
        pincode: str | None = None,
        max_assignments: int | None = None,
        stop_requested: Callable[[], bool] | None = None,
        deadline_s: float | None = None,
    ) -> AutoAssignResult:
        """Assign up to `max_assignments` of the oldest pending orders."""

        limit = self._validate_max(max_assignments)
        deadline = time.monotonic() + deadline_s if deadline_s is not None else None

        queue = find_pending_orders(self.repo, city=city, pincode=pincode)
        candidates, _ = self.tracker.availability()
        by_id: dict[str, AgentWorkload] = {c.agent.id: c for c in candidates}

        result = AutoAssignResult()
        for order in queue:
            if result.assigned >= limit:
                break
            if (stop_requested is not None and stop_requested()) or (
                deadline is not None and time.monotonic() >= deadline
            ):
                result.stopped = True
                logger.info("Auto-assignment stopped after %d assignments", result.assigned)
                break

            ranked = rank_agents(
                order,
                eligible_agents(order, list(by_id.values()), self.config.eligibility),
                self.scorer,
            )
            if not ranked:
                result.skipped.append(SkippedOrder(order.id, order.order_number, NO_ELIGIBLE_AGENT))
                continue

            self._assign_one(order, ranked, by_id, result)

        logger.info(
            "Auto-assignment: %d assigned, %d skipped, %d pending considered",
            result.assigned,
            len(result.skipped),
            len(queue),
        )
        return result

    def _assign_one(
        self,
        order: Order,
        ranked: list[AgentWorkload],
        by_id: dict[str, AgentWorkload],
        result: AutoAssignResult,
    ) -> None:
        """Try the best agent; after an agent-side conflict try the next best once."""

        last_error: AssignmentError | None = None
        for candidate in ranked[:2]:
            agent_id = candidate.agent.id
            try:
                assignment = self.transaction.assign(order.id, agent_id, AUTO_ASSIGNER)
            except (AgentAtCapacity, AgentNotEligible, AgentNotFound) as exc:
                # Our snapshot of this agent is stale; refresh it and move on.
                last_error = exc
                self._refresh(agent_id, by_id)
                continue
            except AssignmentError as exc:
                result.skipped.append(SkippedOrder(order.id, order.order_number, exc.code))
                return

            result.assignments.append(
                AutoAssignment(
                    order_id=order.id,
                    order_number=order.order_number,
                    agent_id=agent_id,
                    agent_name=assignment.agent.full_name,
                )
            )
            result.warnings.extend(assignment.warnings)
            self._refresh(agent_id, by_id)
            return

        reason = last_error.code if last_error is not None else NO_ELIGIBLE_AGENT
        result.skipped.append(SkippedOrder(order.id, order.order_number, reason))

    def _refresh(self, agent_id: str, by_id: dict[str, AgentWorkload]) -> None:
        try:
            by_id[agent_id] = self.tracker.get_agent_workload(agent_id)
        except AgentNotFound:
            by_id.pop(agent_id, None)

    def _validate_max(self, max_assignments: int | None) -> int:
        cfg = self.config.auto_assign
        if max_assignments is None:
            return cfg.default_max_assignments
        if max_assignments < 1 or max_assignments > cfg.max_assignments_limit:
            raise ValidationError(
                f"maxAssignments must be between 1 and {cfg.max_assignments_limit}",
                max_assignments=max_assignments,
            )
        return max_assignments

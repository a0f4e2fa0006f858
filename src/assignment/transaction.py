"""
Assignment transaction: bind one order to one agent, all-or-nothing.

Every attempt reads the order and agent records, checks the preconditions
against that execution-time state, and commits the order, the agent
counter(s) and the assignment event in one conditional multi-record write.
If any record changed between read and commit the store rejects the whole
write; the attempt is then re-read and retried `conflict_retries` times
before failing with ConcurrentModification. No lock is held across the
read → check → commit sequence.

Preconditions (assign):
    order exists, has no agent, status pending/confirmed
    agent exists, is an active pickup agent, active_orders < max_capacity

Preconditions (reassign):
    order exists, is held by a *different* agent, status assigned/in_transit
    new agent satisfies the agent preconditions above
    → old agent −1, new agent +1, order → assigned, in one commit
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable, TypeVar

from src.assignment.notifications import LoggingNotifier, Notifier, send_best_effort
from src.pickups.clock import Clock, utcnow
from src.pickups.errors import (
    AgentAtCapacity,
    AgentNotEligible,
    AssignmentError,
    ConcurrentModification,
    InfrastructureError,
    OrderAlreadyAssigned,
    OrderNotAssignable,
    OrderNotAssigned,
)
from src.pickups.models import (
    UNASSIGNED_STATUSES,
    Agent,
    AssignmentEvent,
    EventKind,
    Order,
    OrderStatus,
    TimelineEntry,
)
from src.store.memory import VersionConflict
from src.store.repository import agent_write, order_write

if TYPE_CHECKING:
    from src.pickups.config import EngineConfig
    from src.store.repository import PickupRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

REASSIGNABLE_STATUSES = frozenset({OrderStatus.ASSIGNED, OrderStatus.IN_TRANSIT})


@dataclass
class Assignment:
    """Outcome of a committed (re)assignment."""

    order: Order
    agent: Agent
    assigned_by: str
    assigned_at: datetime
    kind: EventKind = EventKind.ASSIGN
    previous_agent_id: str | None = None
    warnings: list[str] = field(default_factory=list)


def run_with_retries(attempt: Callable[[], T], retries: int, label: str) -> T:
    """Run `attempt`, re-running it after a version conflict up to `retries` times."""

    last: VersionConflict | None = None
    for n in range(retries + 1):
        try:
            return attempt()
        except VersionConflict as exc:
            last = exc
            logger.debug("Version conflict on %s (attempt %d): %s", label, n + 1, exc)
    raise ConcurrentModification(
        f"{label}: records changed concurrently, gave up after {retries + 1} attempts"
    ) from last


def check_agent_can_take(agent: Agent) -> None:
    """Raise if `agent` may not receive another order right now."""

    if not agent.is_active:
        raise AgentNotEligible(f"Pickup agent {agent.id} is inactive", agent_id=agent.id)
    if agent.active_orders >= agent.max_capacity:
        raise AgentAtCapacity(agent.id, agent.active_orders, agent.max_capacity)


class AssignmentTransaction:
    """Atomic assign / reassign against the repository.

    Args:
        repo: Repository over the shared datastore.
        config: Engine configuration (retry count, notification switches).
        notifier: Best-effort notification sink.
        clock: Source of timestamps.
    """

    def __init__(
        self,
        repo: PickupRepository,
        config: EngineConfig,
        notifier: Notifier | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.repo = repo
        self.config = config
        self.notifier = notifier or LoggingNotifier()
        self.clock = clock

    # ── Assign ───────────────────────────────────────────────────

    def assign(self, order_id: str, agent_id: str, assigned_by: str) -> Assignment:
        """Assign an unassigned order to `agent_id`.

        Raises:
            OrderNotFound, OrderAlreadyAssigned, OrderNotAssignable,
            AgentNotFound, AgentNotEligible, AgentAtCapacity,
            ConcurrentModification, InfrastructureError.
        """
        try:
            result = run_with_retries(
                lambda: self._try_assign(order_id, agent_id, assigned_by),
                self.config.transaction.conflict_retries,
                f"assign {order_id}",
            )
        except AssignmentError as exc:
            self._record_failure(order_id, agent_id, assigned_by, EventKind.ASSIGN, exc)
            raise

        logger.info(
            "Assigned order %s to %s (by %s)", result.order.order_number, agent_id, assigned_by
        )
        if self.config.notifications.notify_on_assign:
            warning = send_best_effort(
                f"assignment {order_id} → {agent_id}",
                lambda: self.notifier.notify_assignment(result.agent, result.order),
            )
            if warning:
                result.warnings.append(warning)
        return result

    def _try_assign(self, order_id: str, agent_id: str, assigned_by: str) -> Assignment:
        order_rec = self.repo.require_order(order_id)
        order = order_rec.value
        if order.assigned_agent_id is not None:
            raise OrderAlreadyAssigned(order_id, order.assigned_agent_id)
        if order.status not in UNASSIGNED_STATUSES:
            raise OrderNotAssignable(
                f"Order {order_id} is {order.status.value} and cannot be assigned",
                order_id=order_id,
            )

        agent_rec = self.repo.require_agent(agent_id)
        agent = agent_rec.value
        check_agent_can_take(agent)

        now = self.clock()
        new_order = replace(
            order,
            status=OrderStatus.ASSIGNED,
            assigned_agent_id=agent.id,
            assigned_at=now,
            updated_at=now,
            timeline=order.timeline
            + [
                TimelineEntry(
                    OrderStatus.ASSIGNED, now, assigned_by, f"Assigned to {agent.full_name}"
                )
            ],
        )
        new_agent = replace(agent, active_orders=agent.active_orders + 1)
        event = AssignmentEvent(
            order_id=order.id,
            agent_id=agent.id,
            assigned_by=assigned_by,
            timestamp=now,
            previous_status=order.status,
            kind=EventKind.ASSIGN,
        )
        self.repo.commit(
            [order_write(order_rec, new_order), agent_write(agent_rec, new_agent)],
            events=[event],
        )
        return Assignment(new_order, new_agent, assigned_by, now)

    # ── Reassign ─────────────────────────────────────────────────

    def reassign(
        self,
        order_id: str,
        new_agent_id: str,
        reason: str | None = None,
        reassigned_by: str = "admin",
    ) -> Assignment:
        """Move an assigned order to a different agent.

        Both load counters change in the same commit as the order, or
        neither does.
        """
        try:
            result = run_with_retries(
                lambda: self._try_reassign(order_id, new_agent_id, reason, reassigned_by),
                self.config.transaction.conflict_retries,
                f"reassign {order_id}",
            )
        except AssignmentError as exc:
            self._record_failure(order_id, new_agent_id, reassigned_by, EventKind.REASSIGN, exc)
            raise

        logger.info(
            "Reassigned order %s from %s to %s (%s)",
            result.order.order_number,
            result.previous_agent_id,
            new_agent_id,
            reason or "no reason",
        )
        notif = self.config.notifications
        if notif.notify_on_assign:
            warning = send_best_effort(
                f"assignment {order_id} → {new_agent_id}",
                lambda: self.notifier.notify_assignment(result.agent, result.order),
            )
            if warning:
                result.warnings.append(warning)
        if notif.notify_previous_agent_on_reassign and result.previous_agent_id:
            previous = self.repo.get_agent(result.previous_agent_id)
            if previous is not None:
                warning = send_best_effort(
                    f"unassignment {order_id} from {result.previous_agent_id}",
                    lambda: self.notifier.notify_unassignment(
                        previous.value, result.order, reason
                    ),
                )
                if warning:
                    result.warnings.append(warning)
        return result

    def _try_reassign(
        self,
        order_id: str,
        new_agent_id: str,
        reason: str | None,
        reassigned_by: str,
    ) -> Assignment:
        order_rec = self.repo.require_order(order_id)
        order = order_rec.value
        old_agent_id = order.assigned_agent_id
        if old_agent_id is None:
            raise OrderNotAssigned(order_id)
        if old_agent_id == new_agent_id:
            raise OrderAlreadyAssigned(order_id, old_agent_id)
        if order.status not in REASSIGNABLE_STATUSES:
            raise OrderNotAssignable(
                f"Order {order_id} is {order.status.value} and cannot be reassigned",
                order_id=order_id,
            )

        new_rec = self.repo.require_agent(new_agent_id)
        new_agent = new_rec.value
        check_agent_can_take(new_agent)

        now = self.clock()
        writes = []
        old_rec = self.repo.get_agent(old_agent_id)
        if old_rec is not None:
            old_agent = old_rec.value
            writes.append(
                agent_write(
                    old_rec, replace(old_agent, active_orders=max(0, old_agent.active_orders - 1))
                )
            )
            old_name = old_agent.full_name
        else:
            old_name = old_agent_id

        note = f"Reassigned from {old_name} to {new_agent.full_name}"
        if reason:
            note += f": {reason}"
        new_order = replace(
            order,
            status=OrderStatus.ASSIGNED,
            assigned_agent_id=new_agent.id,
            assigned_at=now,
            updated_at=now,
            timeline=order.timeline
            + [TimelineEntry(OrderStatus.ASSIGNED, now, reassigned_by, note)],
        )
        updated_new_agent = replace(new_agent, active_orders=new_agent.active_orders + 1)
        writes = [
            order_write(order_rec, new_order),
            *writes,
            agent_write(new_rec, updated_new_agent),
        ]
        event = AssignmentEvent(
            order_id=order.id,
            agent_id=new_agent.id,
            assigned_by=reassigned_by,
            timestamp=now,
            previous_status=order.status,
            kind=EventKind.REASSIGN,
            previous_agent_id=old_agent_id,
            reason=reason,
        )
        self.repo.commit(writes, events=[event])
        return Assignment(
            new_order,
            updated_new_agent,
            reassigned_by,
            now,
            kind=EventKind.REASSIGN,
            previous_agent_id=old_agent_id,
        )

    # ── Audit ────────────────────────────────────────────────────

    def _record_failure(
        self,
        order_id: str,
        agent_id: str,
        assigned_by: str,
        kind: EventKind,
        exc: AssignmentError,
    ) -> None:
        logger.warning("%s of order %s to %s failed: %s", kind.value, order_id, agent_id, exc)
        if isinstance(exc, InfrastructureError):
            return
        event = AssignmentEvent(
            order_id=order_id,
            agent_id=agent_id,
            assigned_by=assigned_by,
            timestamp=self.clock(),
            previous_status=None,
            kind=kind,
            success=False,
            reason=exc.code,
        )
        try:
            self.repo.record_event(event)
        except InfrastructureError:
            logger.warning("Could not record failed %s event for %s", kind.value, order_id)

"""
Assignment notifications.

Delivery (email / SMS / push) is an external collaborator; the engine only
sees the `Notifier` protocol. Sends are best-effort: a failure is logged
and surfaced as a warning string, never undoing the committed assignment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from src.pickups.models import Agent, Order

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    """Protocol for notification delivery."""

    def notify_assignment(self, agent: Agent, order: Order) -> None:
        """Tell `agent` it now holds `order`."""

    def notify_unassignment(self, agent: Agent, order: Order, reason: str | None) -> None:
        """Tell `agent` that `order` was taken away from it."""


@dataclass
class LoggingNotifier:
    """Default notifier: logs each message and keeps it in `sent`."""

    sent: list[tuple[str, str, str]] = field(default_factory=list)  # (kind, agent_id, order_id)

    def notify_assignment(self, agent: Agent, order: Order) -> None:
        logger.info(
            "Notify %s (%s): order %s assigned for %s %s",
            agent.full_name,
            agent.id,
            order.order_number,
            order.preferred_date.isoformat(),
            order.time_slot.value,
        )
        self.sent.append(("assignment", agent.id, order.id))

    def notify_unassignment(self, agent: Agent, order: Order, reason: str | None) -> None:
        logger.info(
            "Notify %s (%s): order %s reassigned (%s)",
            agent.full_name,
            agent.id,
            order.order_number,
            reason or "no reason given",
        )
        self.sent.append(("unassignment", agent.id, order.id))


def send_best_effort(label: str, send: Callable[[], None]) -> str | None:
    """Run one notification send; return a warning message if it failed."""

    try:
        send()
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.warning("Notification failed (%s): %s", label, exc, exc_info=True)
        return f"Notification failed ({label}): {exc}"
    return None

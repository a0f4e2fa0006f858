"""
Assignment policy: choose one agent among the eligible ones.

Greedy, load-first scoring. Lower key wins:

    1. fewer active orders          (load balance)
    2. more completions this week   (reward reliable agents)
    3. agent id                     (deterministic tie-break)

Scorers are pluggable: any callable (order, candidate) → sortable key can be
passed to `select_agent`, e.g. a distance-aware scorer once coordinates are
available.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from src.assignment.workload import AgentWorkload
    from src.pickups.models import Order


Scorer = Callable[["Order", "AgentWorkload"], Any]


def load_first_score(order: Order, candidate: AgentWorkload) -> tuple[int, int, str]:
    """Default scorer."""
    # pylint: disable=unused-argument
    return (
        candidate.workload.active_orders,
        -candidate.performance.weekly_completions,
        candidate.agent.id,
    )


def rank_agents(
    order: Order,
    eligible: list[AgentWorkload],
    scorer: Scorer = load_first_score,
) -> list[AgentWorkload]:
    """Eligible agents best-first."""
    return sorted(eligible, key=lambda c: scorer(order, c))


def select_agent(
    order: Order,
    eligible: list[AgentWorkload],
    scorer: Scorer = load_first_score,
) -> AgentWorkload | None:
    """Best agent for `order`, or None when nobody is eligible."""
    if not eligible:
        return None
    return min(eligible, key=lambda c: scorer(order, c))

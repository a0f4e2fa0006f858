"""
Pickup assignment engine.

Matches pending pickup orders to pickup agents under capacity constraints,
with manual, bulk and automatic assignment. Every assignment is a single
conditional commit against the shared datastore, so concurrent callers
cannot double-assign an order or push an agent past capacity.

Quick start:
    from src.assignment import AssignmentEngine
    from src.store.repository import PickupRepository
    engine = AssignmentEngine(PickupRepository())
    result = engine.auto_assign(city="Pune", max_assignments=10)
"""

from src.assignment.engine import AssignmentEngine, Suggestion
from src.assignment.orchestrator import AutoAssignResult, BulkResult
from src.assignment.policy import load_first_score, select_agent
from src.assignment.eligibility import eligible_agents
from src.assignment.statistics import AssignmentStatistics
from src.assignment.transaction import Assignment
from src.assignment.workload import AgentWorkload, Workload, WorkloadTracker

__all__ = [
    "AssignmentEngine",
    "Suggestion",
    "AutoAssignResult",
    "BulkResult",
    "load_first_score",
    "select_agent",
    "eligible_agents",
    "AssignmentStatistics",
    "Assignment",
    "AgentWorkload",
    "Workload",
    "WorkloadTracker",
]

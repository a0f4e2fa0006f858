"""
Tests for bulk and auto assignment.

Tests cover:
1. Bulk partial failure counts and per-order reasons
2. Bulk worked example (capacity 1, two orders)
3. Auto-assignment oldest-first fairness under a max bound
4. Skipping orders without an eligible agent
5. Load balancing and capacity across one run
6. Stale agent snapshot fallback to the next best agent
7. Cooperative stop and deadline
8. maxAssignments validation

Run with: pytest tests/test_orchestrator.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.assignment.engine import AssignmentEngine
from src.assignment.orchestrator import NO_ELIGIBLE_AGENT
from src.pickups.config import EngineConfig
from src.pickups.errors import ValidationError
from src.pickups.lifecycle import AgentService, OrderService
from src.pickups.models import AUTO_ASSIGNER, Address, ItemCondition, OrderItem, TimeSlot
from src.store.repository import PickupRepository

NOW = datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────────────


@pytest.fixture
def repo() -> PickupRepository:
    return PickupRepository()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def engine(repo, config) -> AssignmentEngine:
    return AssignmentEngine(repo, config, clock=lambda: NOW)


@pytest.fixture
def orders(repo, config) -> OrderService:
    return OrderService(repo, config, clock=lambda: NOW)


@pytest.fixture
def agents(repo, config) -> AgentService:
    return AgentService(repo, config, clock=lambda: NOW)


def _agent(agents, agent_id, capacity=8, city="Pune"):
    return agents.register_agent(
        first_name=agent_id.title(),
        last_name="Agent",
        address=Address(city=city, pincode="411001"),
        max_capacity=capacity,
        agent_id=agent_id,
    )


def _order(orders, order_id, minutes_ago=60, city="Pune"):
    return orders.create_order(
        customer_id="cust-1",
        address=Address(city=city, pincode="411038"),
        preferred_date=NOW.date(),
        time_slot=TimeSlot.AFTERNOON,
        items=[OrderItem("mobile", ItemCondition.FAIR, 2, 400.0)],
        created_at=NOW - timedelta(minutes=minutes_ago),
        order_id=order_id,
    )


def _load(repo, agent_id) -> int:
    return repo.require_agent(agent_id).value.active_orders


# ── Test: Bulk ────────────────────────────────────────────────────


class TestBulkAssign:
    """Explicit (order, agent) pairs."""

    def test_partial_failure_reports_already_assigned(self, engine, repo, orders, agents):
        """N pairs with K already-assigned orders → N-K successful, K failed."""
        _agent(agents, "a1")
        _agent(agents, "a2")
        for i in range(5):
            _order(orders, f"o{i}")
        engine.assign("o1", "a2", "admin")
        engine.assign("o3", "a2", "admin")

        result = engine.bulk_assign([(f"o{i}", "a1") for i in range(5)], assigned_by="admin")

        assert result.successful == 3
        assert result.failed == 2
        assert {e.order_id for e in result.errors} == {"o1", "o3"}
        assert all(e.code == "OrderAlreadyAssigned" for e in result.errors)
        assert all(not e.retryable for e in result.errors)
        assert _load(repo, "a1") == 3
        assert _load(repo, "a2") == 2

    def test_capacity_one_agent_takes_only_first(self, engine, repo, orders, agents):
        """[(O1, A), (O2, A)] with capacity 1 → 1 successful, 1 AgentAtCapacity."""
        _agent(agents, "a", capacity=1)
        _order(orders, "o1")
        _order(orders, "o2")

        result = engine.bulk_assign([("o1", "a"), ("o2", "a")], assigned_by="admin")

        assert (result.successful, result.failed) == (1, 1)
        assert result.results[0].success
        assert result.results[0].order_number.startswith("EW")
        assert result.errors[0].order_id == "o2"
        assert result.errors[0].code == "AgentAtCapacity"
        assert _load(repo, "a") == 1

    def test_unknown_ids_are_per_order_failures(self, engine, orders, agents):
        _agent(agents, "a1")
        _order(orders, "o1")

        result = engine.bulk_assign([("missing", "a1"), ("o1", "ghost")], assigned_by="admin")

        assert result.successful == 0
        assert [e.code for e in result.errors] == ["OrderNotFound", "AgentNotFound"]

    def test_empty_request_is_invalid(self, engine):
        with pytest.raises(ValidationError):
            engine.bulk_assign([], assigned_by="admin")


# ── Test: Auto ────────────────────────────────────────────────────


class TestAutoAssign:
    """Oldest-first automatic assignment."""

    def test_oldest_eligible_orders_are_chosen_first(self, engine, repo, orders, agents):
        _agent(agents, "a1")
        _agent(agents, "a2")
        # Ids deliberately out of age order.
        _order(orders, "o-c", minutes_ago=30)
        _order(orders, "o-a", minutes_ago=50)
        _order(orders, "o-e", minutes_ago=10)
        _order(orders, "o-b", minutes_ago=40)
        _order(orders, "o-d", minutes_ago=20)
        _order(orders, "far", minutes_ago=90, city="Nashik")

        result = engine.auto_assign(max_assignments=3)

        assert [a.order_id for a in result.assignments] == ["o-a", "o-b", "o-c"]
        assert [s.order_id for s in result.skipped] == ["far"]
        assert result.skipped[0].reason == NO_ELIGIBLE_AGENT
        assert not result.stopped
        pending = {o.id for o in engine.pending_orders()}
        assert pending == {"o-d", "o-e", "far"}
        assert all(e.assigned_by == AUTO_ASSIGNER for e in repo.events())

    def test_load_is_balanced_across_agents(self, engine, repo, orders, agents):
        _agent(agents, "a1")
        _agent(agents, "a2")
        for i in range(4):
            _order(orders, f"o{i}", minutes_ago=60 - i)

        result = engine.auto_assign(max_assignments=10)

        assert result.assigned == 4
        assert _load(repo, "a1") == 2
        assert _load(repo, "a2") == 2

    def test_capacity_is_respected_within_a_run(self, engine, repo, orders, agents):
        _agent(agents, "a1", capacity=2)
        for i in range(5):
            _order(orders, f"o{i}", minutes_ago=60 - i)

        result = engine.auto_assign(max_assignments=10)

        assert result.assigned == 2
        assert len(result.skipped) == 3
        assert _load(repo, "a1") == 2

    def test_city_filter_limits_the_queue(self, engine, orders, agents):
        _agent(agents, "p1")
        _agent(agents, "m1", city="Mumbai")
        _order(orders, "pune-1", minutes_ago=30)
        _order(orders, "mumbai-1", minutes_ago=40, city="Mumbai")

        result = engine.auto_assign(city="mumbai")

        assert [(a.order_id, a.agent_id) for a in result.assignments] == [("mumbai-1", "m1")]

    def test_stale_snapshot_falls_back_to_next_agent(self, engine, repo, orders, agents):
        """An agent disabled after the snapshot is skipped for the next best one."""
        _agent(agents, "a1")
        _agent(agents, "a2")
        _order(orders, "o1")
        calls = []

        def stop_requested():
            if not calls:
                agents.set_active("a1", False)
            calls.append(1)
            return False

        result = engine.auto_assign(stop_requested=stop_requested)

        assert [a.agent_id for a in result.assignments] == ["a2"]
        assert _load(repo, "a1") == 0

    def test_stop_request_halts_between_orders(self, engine, orders, agents):
        _agent(agents, "a1")
        for i in range(4):
            _order(orders, f"o{i}", minutes_ago=60 - i)
        checks = []

        def stop_requested():
            checks.append(1)
            return len(checks) > 2

        result = engine.auto_assign(stop_requested=stop_requested)

        assert result.stopped
        assert result.assigned == 2
        assert len(engine.pending_orders()) == 2

    def test_zero_deadline_stops_before_any_order(self, engine, orders, agents):
        _agent(agents, "a1")
        _order(orders, "o1")

        result = engine.auto_assign(deadline_s=0)

        assert result.stopped
        assert result.assigned == 0

    def test_empty_queue(self, engine, agents):
        _agent(agents, "a1")
        result = engine.auto_assign()
        assert result.assigned == 0
        assert result.skipped == []

    @pytest.mark.parametrize("bad", [0, -1, 201])
    def test_max_assignments_out_of_range(self, engine, bad):
        with pytest.raises(ValidationError):
            engine.auto_assign(max_assignments=bad)

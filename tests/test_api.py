"""
Tests for the HTTP API.

Tests cover:
1. Order creation and the error envelope (400 / 404 / 409 / 422 / 503)
2. Pending queue, availability and suggestions
3. Single, bulk, auto and re-assignment responses
4. Statistics and analytics
5. Notification endpoint (502 on delivery failure)
6. Order lifecycle endpoints
7. Support tickets with caller identity headers

Run with: pytest tests/test_api.py -v
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.api.server import create_app
from src.assignment.notifications import LoggingNotifier
from src.pickups.models import Address, ItemCondition, OrderItem, TimeSlot
from src.store.memory import MemoryStore, StoreUnavailable
from src.store.repository import PickupRepository

NOW = datetime(2026, 3, 11, 10, 0, tzinfo=timezone.utc)

CUSTOMER = {"X-User-Id": "cust-1", "X-User-Role": "customer"}
OTHER_CUSTOMER = {"X-User-Id": "cust-2", "X-User-Role": "customer"}


class FailingNotifier(LoggingNotifier):
    def notify_assignment(self, agent, order):
        raise RuntimeError("SMS gateway down")


class SwitchableStore(MemoryStore):
    """MemoryStore whose reads fail once `down` is set."""

    down = False

    def get(self, collection, key):
        if self.down:
            raise StoreUnavailable("timeout")
        return super().get(collection, key)


# ── Fixtures ──────────────────────────────────────────────────────


def _seed(app):
    s = app.state.services
    s.agents.register_agent("Ravi", "Patil", Address("Pune", "411001"), agent_id="p1")
    s.agents.register_agent(
        "Sneha", "Kulkarni", Address("Pune", "411038"), max_capacity=1, agent_id="p2"
    )
    s.agents.register_agent("Farhan", "Shaikh", Address("Mumbai", "400050"), agent_id="m1")
    for order_id, city, pincode, minutes_ago in [
        ("o1", "Pune", "411038", 90),
        ("o2", "Pune", "411004", 60),
        ("o3", "Mumbai", "400050", 30),
    ]:
        s.orders.create_order(
            customer_id="cust-1",
            address=Address(city, pincode),
            preferred_date=NOW.date(),
            time_slot=TimeSlot.MORNING,
            items=[OrderItem("laptop", ItemCondition.GOOD, 1, 2500.0)],
            created_at=NOW - timedelta(minutes=minutes_ago),
            order_id=order_id,
        )


@pytest.fixture
def app():
    app = create_app(clock=lambda: NOW)
    _seed(app)
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ── Test: Orders and errors ───────────────────────────────────────


class TestOrdersAndErrors:
    """Order creation and the error envelope."""

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_create_order_returns_pin(self, client):
        body = {
            "customerId": "cust-9",
            "pickupAddress": {"city": "Pune", "pincode": "411016", "street": "Aundh"},
            "preferredPickupDate": "2026-03-12",
            "timeSlot": "evening",
            "items": [{"category": "printer", "condition": "poor", "estimatedPrice": 300}],
            "priority": "high",
        }
        resp = client.post("/api/orders", json=body)

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["status"] == "pending"
        assert data["orderNumber"] == "EW000004"
        assert data["pricing"]["estimatedTotal"] == 300
        assert len(data["pin"]) == 6
        assert "pin" not in client.get(f"/api/orders/{data['id']}").json()["data"]

    def test_bad_pincode_is_400_envelope(self, client):
        body = {
            "customerId": "cust-9",
            "pickupAddress": {"city": "Pune", "pincode": "41"},
            "preferredPickupDate": "2026-03-12",
            "timeSlot": "evening",
            "items": [{"category": "tv", "estimatedPrice": 100}],
        }
        resp = client.post("/api/orders", json=body)

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert resp.json()["code"] == "ValidationError"

    def test_malformed_body_is_422(self, client):
        assert client.put("/api/orders/o1/assign", json={}).status_code == 422

    def test_unknown_order_is_404(self, client):
        resp = client.get("/api/orders/ghost")
        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": "Order not found with id of ghost",
            "code": "OrderNotFound",
            "retryable": False,
        }

    def test_store_outage_is_retryable_503(self):
        store = SwitchableStore()
        app = create_app(repo=PickupRepository(store), clock=lambda: NOW)
        _seed(app)
        client = TestClient(app)
        store.down = True

        resp = client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})

        assert resp.status_code == 503
        assert resp.json()["code"] == "InfrastructureError"
        assert resp.json()["retryable"] is True

    def test_list_orders_by_customer(self, client):
        resp = client.get("/api/orders", params={"customerId": "cust-1"})
        assert [o["id"] for o in resp.json()["data"]] == ["o3", "o2", "o1"]


# ── Test: Queries ─────────────────────────────────────────────────


class TestQueries:
    """Pending queue, availability, suggestion."""

    def test_pending_queue_oldest_first_with_filters(self, client):
        resp = client.get("/api/orders/pending-assignment")
        assert [o["id"] for o in resp.json()["data"]] == ["o1", "o2", "o3"]

        resp = client.get("/api/orders/pending-assignment", params={"city": "mumbai"})
        assert resp.json()["count"] == 1

        resp = client.get("/api/orders/pending-assignment", params={"timeSlot": "evening"})
        assert resp.json()["count"] == 0

    def test_availability(self, client):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p2"})

        resp = client.get("/api/users/pickup-boys/availability", params={"city": "Pune"})

        body = resp.json()
        assert [a["id"] for a in body["data"]] == ["p1", "p2"]
        assert body["data"][1]["workload"]["availabilityStatus"] == "overloaded"
        assert body["data"][1]["workload"]["canTakeNewOrder"] is False
        assert body["summary"] == {"available": 1, "busy": 0, "overloaded": 1, "canTakeOrders": 1}

    def test_suggested_agent(self, client):
        resp = client.get("/api/orders/o3/suggested-agent")
        data = resp.json()["data"]
        assert data["suggested"]["id"] == "m1"
        assert [r["id"] for r in data["ranked"]] == ["m1"]


# ── Test: Assignment endpoints ────────────────────────────────────


class TestAssignment:
    """Single, bulk, auto and reassign."""

    def test_assign_then_conflict(self, client):
        resp = client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "assigned"
        assert resp.json()["data"]["assignedPickupBoy"] == "p1"
        assert resp.json()["message"] == "Order assigned to Ravi Patil"

        again = client.put("/api/orders/o1/assign", json={"pickupBoyId": "m1"})
        assert again.status_code == 409
        assert again.json()["code"] == "OrderAlreadyAssigned"
        assert again.json()["retryable"] is False

    def test_unknown_agent_is_404(self, client):
        resp = client.put("/api/orders/o1/assign", json={"pickupBoyId": "ghost"})
        assert resp.status_code == 404
        assert resp.json()["code"] == "AgentNotFound"

    def test_bulk_partial_failure(self, client):
        body = {
            "assignments": [
                {"orderId": "o1", "pickupBoyId": "p2"},
                {"orderId": "o2", "pickupBoyId": "p2"},
            ]
        }
        resp = client.post("/api/orders/bulk-assign", json=body)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert (data["successful"], data["failed"]) == (1, 1)
        assert data["errors"] == [
            {
                "orderId": "o2",
                "pickupBoyId": "p2",
                "success": False,
                "error": "Pickup agent p2 is at capacity (1/1)",
                "code": "AgentAtCapacity",
                "retryable": False,
            }
        ]
        assert resp.json()["message"] == "1 orders assigned successfully, 1 failed"

    def test_bulk_empty_is_400(self, client):
        resp = client.post("/api/orders/bulk-assign", json={"assignments": []})
        assert resp.status_code == 400

    def test_auto_assign(self, client):
        resp = client.post("/api/orders/auto-assign", json={"maxAssignments": 5})

        data = resp.json()["data"]
        assert data["assigned"] == 3
        assert [(a["orderId"], a["pickupBoyId"]) for a in data["assignments"]] == [
            ("o1", "p1"),
            ("o2", "p2"),
            ("o3", "m1"),
        ]
        assert data["skipped"] == []
        assert data["stopped"] is False

    @pytest.mark.parametrize("bad", [0, 201])
    def test_auto_assign_bounds(self, client, bad):
        resp = client.post("/api/orders/auto-assign", json={"maxAssignments": bad})
        assert resp.status_code == 400
        assert resp.json()["code"] == "ValidationError"

    def test_reassign(self, client, app):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})

        resp = client.put(
            "/api/orders/o1/reassign", json={"newPickupBoyId": "p2", "reason": "closer"}
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["assignedPickupBoy"] == "p2"
        repo = app.state.services.repo
        assert repo.require_agent("p1").value.active_orders == 0
        assert repo.require_agent("p2").value.active_orders == 1

    def test_reassign_unassigned_order(self, client):
        resp = client.put("/api/orders/o1/reassign", json={"newPickupBoyId": "p2"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "OrderNotAssigned"

    def test_assignment_is_recorded_with_caller_identity(self, client, app):
        client.put(
            "/api/orders/o1/assign",
            json={"pickupBoyId": "p1"},
            headers={"X-User-Id": "manager-7", "X-User-Role": "manager"},
        )
        events = app.state.services.repo.events()
        assert [(e.order_id, e.assigned_by) for e in events] == [("o1", "manager-7")]


# ── Test: Statistics ──────────────────────────────────────────────


class TestStatisticsEndpoints:
    """Dashboard statistics and analytics."""

    def test_statistics(self, client):
        client.post("/api/orders/auto-assign", json={})

        data = client.get("/api/orders/statistics", params={"timeframe": "today"}).json()["data"]

        assert data["todayAssigned"] == 3
        assert data["autoAssignedToday"] == 3
        assert data["pendingAssignments"] == 0
        assert data["averageAssignmentTime"] == "60 min"

    def test_unknown_timeframe_is_rejected(self, client):
        assert client.get("/api/orders/statistics", params={"timeframe": "decade"}).status_code == 422

    def test_analytics(self, client):
        client.post("/api/orders/auto-assign", json={})
        data = client.get("/api/assignments/analytics").json()["data"]
        assert data["successfulAssignments"] == 3
        assert {d["label"] for d in data["cityDistribution"]} == {"Pune", "Mumbai"}

    def test_performance(self, client):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        data = client.get("/api/users/pickup-boys/p1/performance").json()["data"]
        assert data["totalAssigned"] == 1
        assert data["activeOrders"] == 1
        assert data["efficiency"] == "low"


# ── Test: Notifications ───────────────────────────────────────────


class TestNotifications:
    """Re-sending assignment notifications."""

    def test_notify_success(self, client):
        resp = client.post("/api/users/p1/notify-assignment", json={"orderId": "o1"})
        assert resp.status_code == 200
        assert resp.json()["success"] is True

    def test_notify_unknown_agent(self, client):
        resp = client.post("/api/users/ghost/notify-assignment", json={"orderId": "o1"})
        assert resp.status_code == 404

    def test_delivery_failure_is_502_but_assignment_stands(self):
        app = create_app(notifier=FailingNotifier(), clock=lambda: NOW)
        _seed(app)
        client = TestClient(app)

        assigned = client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        assert assigned.status_code == 200
        assert len(assigned.json()["warnings"]) == 1

        resp = client.post("/api/users/p1/notify-assignment", json={"orderId": "o1"})
        assert resp.status_code == 502
        assert resp.json()["code"] == "NotificationFailed"
        assert resp.json()["success"] is False


# ── Test: Order lifecycle endpoints ───────────────────────────────


class TestLifecycleEndpoints:
    """Status, PIN verification, cancel, assigned list."""

    def test_pickup_flow(self, client, app):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        pin = app.state.services.orders.get_order("o1").pin

        wrong = client.put(
            "/api/orders/o1/verify", json={"pickupBoyId": "p1", "pin": "not-a-pin"}
        )
        assert wrong.status_code == 400
        assert wrong.json()["code"] == "InvalidPin"

        ok = client.put("/api/orders/o1/verify", json={"pickupBoyId": "p1", "pin": pin})
        assert ok.json()["data"]["status"] == "picked_up"

        client.put("/api/orders/o1/status", json={"status": "processing"})
        done = client.put("/api/orders/o1/status", json={"status": "completed", "actualTotal": 2200})
        assert done.json()["data"]["pricing"]["finalAmount"] == 2200
        assert client.get("/api/users/pickup-boys/p1/assigned").json()["count"] == 0

    def test_agent_cannot_update_foreign_order(self, client):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        resp = client.put(
            "/api/orders/o1/status", json={"status": "in_transit", "pickupBoyId": "p2"}
        )
        assert resp.status_code == 403

    def test_invalid_transition_is_409(self, client):
        resp = client.put("/api/orders/o1/status", json={"status": "completed"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "InvalidStatusTransition"

    def test_cancel_releases_agent(self, client, app):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p2"})
        resp = client.put("/api/orders/o1/cancel", json={"reason": "moved"})
        assert resp.json()["data"]["status"] == "cancelled"
        assert app.state.services.repo.require_agent("p2").value.active_orders == 0

    def test_cancel_is_limited_to_the_order_owner(self, client):
        forbidden = client.put("/api/orders/o1/cancel", json={}, headers=OTHER_CUSTOMER)
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "NotAuthorized"
        assert client.get("/api/orders/o1").json()["data"]["status"] == "pending"

        resp = client.put("/api/orders/o1/cancel", json={}, headers=CUSTOMER)
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "cancelled"

    def test_other_agent_cannot_cancel_via_status(self, client, app):
        client.put("/api/orders/o1/assign", json={"pickupBoyId": "p1"})
        resp = client.put(
            "/api/orders/o1/status", json={"status": "cancelled", "pickupBoyId": "p2"}
        )
        assert resp.status_code == 403
        assert app.state.services.repo.require_agent("p1").value.active_orders == 1

    def test_register_and_disable_agent(self, client):
        body = {
            "id": "p9",
            "firstName": "Asha",
            "lastName": "More",
            "address": {"city": "Pune", "pincode": "411002"},
            "maxCapacity": 3,
        }
        created = client.post("/api/users/pickup-boys", json=body)
        assert created.status_code == 201
        assert created.json()["data"]["maxCapacity"] == 3

        client.put("/api/users/p9/status", json={"isActive": False})
        resp = client.put("/api/orders/o1/assign", json={"pickupBoyId": "p9"})
        assert resp.status_code == 409
        assert resp.json()["code"] == "AgentNotEligible"

    def test_priority(self, client):
        resp = client.put("/api/orders/o1/priority", json={"priority": "urgent"})
        assert resp.json()["data"]["priority"] == "urgent"


# ── Test: Support ─────────────────────────────────────────────────


class TestSupportEndpoints:
    """Tickets scoped by caller identity."""

    def _open(self, client, headers=CUSTOMER):
        body = {
            "subject": "Agent was late",
            "description": "Arrived two hours after the slot",
            "category": "pickup_issue",
            "orderId": "o1",
        }
        resp = client.post("/api/support", json=body, headers=headers)
        assert resp.status_code == 201
        return resp.json()["data"]

    def test_customer_scope(self, client):
        mine = self._open(client)
        self._open(client, headers=OTHER_CUSTOMER)

        listed = client.get("/api/support", headers=CUSTOMER).json()
        assert listed["total"] == 1
        assert listed["data"][0]["id"] == mine["id"]
        assert client.get("/api/support").json()["total"] == 2

        forbidden = client.get(f"/api/support/{mine['id']}", headers=OTHER_CUSTOMER)
        assert forbidden.status_code == 403

    def test_conversation_and_rating(self, client):
        ticket = self._open(client)
        tid = ticket["id"]
        client.post(
            f"/api/support/{tid}/messages",
            json={"message": "Checking with the agent", "isInternal": True},
        )
        client.put(f"/api/support/{tid}/status", json={"status": "waiting_customer"})
        reply = client.post(
            f"/api/support/{tid}/messages", json={"message": "Any news?"}, headers=CUSTOMER
        )
        assert reply.json()["data"]["status"] == "open"

        seen = client.get(f"/api/support/{tid}", headers=CUSTOMER).json()["data"]
        assert [m["message"] for m in seen["messages"]] == ["Any news?"]

        client.put(
            f"/api/support/{tid}/status",
            json={"status": "resolved", "resolutionNote": "Agent coached"},
        )
        rated = client.put(f"/api/support/{tid}/rate", json={"rating": 5}, headers=CUSTOMER)
        assert rated.json()["data"]["customerRating"]["rating"] == 5

        stats = client.get("/api/support/stats").json()["data"]
        assert stats["resolved"] == 1

    def test_paging_links(self, client):
        for _ in range(3):
            self._open(client)
        body = client.get("/api/support", params={"page": 2, "limit": 2}).json()
        assert body["count"] == 1
        assert body["pagination"] == {"prev": {"page": 1, "limit": 2}}

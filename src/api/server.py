"""FastAPI server for the pickup assignment dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api import serializers as ser
from src.api.schemas import (
    AddressIn,
    AgentStatusRequest,
    AssignRequest,
    AutoAssignRequest,
    BulkAssignRequest,
    CancelOrderRequest,
    CreateOrderRequest,
    NotifyAssignmentRequest,
    OrderStatusName,
    OrderStatusRequest,
    PriorityName,
    PriorityRequest,
    ReassignRequest,
    RegisterAgentRequest,
    TicketAssignRequest,
    TicketCategoryName,
    TicketCreateRequest,
    TicketMessageRequest,
    TicketRateRequest,
    TicketStatusName,
    TicketStatusRequest,
    TimeSlotName,
    VerifyPinRequest,
)
from src.assignment.engine import AssignmentEngine
from src.assignment.notifications import Notifier
from src.pickups.clock import Clock, utcnow
from src.pickups.config import EngineConfig
from src.pickups.errors import AssignmentError
from src.pickups.lifecycle import AgentService, OrderService
from src.pickups.models import (
    Address,
    ItemCondition,
    OrderItem,
    OrderPriority,
    OrderStatus,
    TimeSlot,
)
from src.store.fixtures import load_fixtures
from src.store.repository import PickupRepository
from src.support.tickets import TicketCategory, TicketService, TicketStatus

logger = logging.getLogger(__name__)

STAFF_ROLES = frozenset({"admin", "manager"})

router = APIRouter(prefix="/api")


# ─────────────────────────────────────────────────────────────────────────────
# Wiring
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class Services:
    """Everything a request handler needs, built once per app."""

    config: EngineConfig
    repo: PickupRepository
    engine: AssignmentEngine
    orders: OrderService
    agents: AgentService
    tickets: TicketService


@dataclass
class Actor:
    """Caller identity as forwarded by the auth gateway."""

    id: str
    role: str

    @property
    def staff(self) -> bool:
        return self.role in STAFF_ROLES


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_actor(
    x_user_id: str = Header("admin", alias="X-User-Id"),
    x_user_role: str = Header("admin", alias="X-User-Role"),
) -> Actor:
    return Actor(x_user_id, x_user_role)


def _address(body: AddressIn) -> Address:
    return Address(
        city=body.city.strip(),
        pincode=body.pincode.strip(),
        street=body.street,
        state=body.state,
        landmark=body.landmark,
    )


def create_app(
    config: EngineConfig | None = None,
    repo: PickupRepository | None = None,
    notifier: Notifier | None = None,
    clock: Clock = utcnow,
) -> FastAPI:
    """Build the API over one repository (a fresh in-memory one by default)."""

    config = config or EngineConfig()
    repo = repo or PickupRepository()
    services = Services(
        config=config,
        repo=repo,
        engine=AssignmentEngine(repo, config, notifier, clock),
        orders=OrderService(repo, config, clock),
        agents=AgentService(repo, config, clock),
        tickets=TicketService(repo, config, clock),
    )
    if config.api.seed_path:
        load_fixtures(config.api.seed_path, services.orders, services.agents, services.engine)

    app = FastAPI(title="E-waste Pickup Assignment API", version="0.1.0")
    app.state.services = services
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.api.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AssignmentError)
    async def assignment_error_handler(_: Request, exc: AssignmentError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.http_status, content={"success": False, **exc.to_dict()}
        )

    app.include_router(router)
    return app


@router.get("/health")
async def health() -> dict:
    """Basic readiness endpoint."""

    return {"status": "ok"}


# ─────────────────────────────────────────────────────────────────────────────
# Assignment
# ─────────────────────────────────────────────────────────────────────────────


@router.get("/orders/pending-assignment")
def pending_assignment(
    city: Optional[str] = None,
    pincode: Optional[str] = None,
    time_slot: Optional[TimeSlotName] = Query(None, alias="timeSlot"),
    pickup_date: Optional[date] = Query(None, alias="date"),
    s: Services = Depends(get_services),
) -> dict:
    orders = s.engine.pending_orders(
        city=city,
        pincode=pincode,
        time_slot=TimeSlot(time_slot) if time_slot else None,
        preferred_date=pickup_date,
    )
    return {"success": True, "count": len(orders), "data": [ser.order_json(o) for o in orders]}


@router.get("/users/pickup-boys/availability")
def pickup_boys_availability(
    city: Optional[str] = None,
    pincode: Optional[str] = None,
    s: Services = Depends(get_services),
) -> dict:
    rows, summary = s.engine.availability(city=city, pincode=pincode)
    return {
        "success": True,
        "count": len(rows),
        "data": [ser.agent_workload_json(r) for r in rows],
        "summary": ser.summary_json(summary),
    }


@router.get("/users/pickup-boys/{agent_id}/performance")
def pickup_boy_performance(agent_id: str, s: Services = Depends(get_services)) -> dict:
    return {"success": True, "data": ser.performance_json(s.agents.performance(agent_id))}


@router.put("/orders/{order_id}/assign")
def assign_order(
    order_id: str,
    body: AssignRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    result = s.engine.assign(order_id, body.pickup_boy_id, assigned_by=actor.id)
    return {
        "success": True,
        "data": ser.order_json(result.order),
        "message": f"Order assigned to {result.agent.full_name}",
        "warnings": result.warnings,
    }


@router.post("/orders/bulk-assign")
def bulk_assign(
    body: BulkAssignRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    result = s.engine.bulk_assign(
        [(a.order_id, a.pickup_boy_id) for a in body.assignments], assigned_by=actor.id
    )
    return {
        "success": True,
        "data": ser.bulk_json(result),
        "message": f"{result.successful} orders assigned successfully, {result.failed} failed",
        "warnings": result.warnings,
    }


@router.post("/orders/auto-assign")
def auto_assign(body: AutoAssignRequest, s: Services = Depends(get_services)) -> dict:
    result = s.engine.auto_assign(
        city=body.city,
        pincode=body.pincode,
        max_assignments=body.max_assignments,
        deadline_s=s.config.auto_assign.request_deadline_s,
    )
    return {
        "success": True,
        "data": ser.auto_json(result),
        "message": f"{result.assigned} orders auto-assigned successfully",
        "warnings": result.warnings,
    }


@router.put("/orders/{order_id}/reassign")
def reassign_order(
    order_id: str,
    body: ReassignRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    result = s.engine.reassign(
        order_id, body.new_pickup_boy_id, reason=body.reason, reassigned_by=actor.id
    )
    return {
        "success": True,
        "data": ser.order_json(result.order),
        "message": f"Order reassigned to {result.agent.full_name}",
        "warnings": result.warnings,
    }


@router.get("/orders/statistics")
def assignment_statistics(
    timeframe: Literal["today", "week", "month", "year", "all"] = "today",
    s: Services = Depends(get_services),
) -> dict:
    return {"success": True, "data": ser.statistics_json(s.engine.get_statistics(timeframe))}


@router.get("/assignments/analytics")
def assignment_analytics(
    period: Literal["today", "week", "month", "year", "all"] = "month",
    s: Services = Depends(get_services),
) -> dict:
    return {"success": True, "data": ser.analytics_json(s.engine.get_analytics(period))}


@router.post("/users/{agent_id}/notify-assignment")
def notify_assignment(
    agent_id: str,
    body: NotifyAssignmentRequest,
    s: Services = Depends(get_services),
):
    try:
        s.engine.notify_assignment(agent_id, body.order_id)
    except AssignmentError:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.warning("Notification to %s failed: %s", agent_id, exc, exc_info=True)
        return JSONResponse(
            status_code=502,
            content={
                "success": False,
                "error": f"Failed to send notification: {exc}",
                "code": "NotificationFailed",
            },
        )
    return {"success": True, "message": "Assignment notification sent successfully"}


# ─────────────────────────────────────────────────────────────────────────────
# Orders
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/orders", status_code=201)
def create_order(body: CreateOrderRequest, s: Services = Depends(get_services)) -> dict:
    order = s.orders.create_order(
        customer_id=body.customer_id,
        address=_address(body.pickup_address),
        preferred_date=body.preferred_pickup_date,
        time_slot=TimeSlot(body.time_slot),
        items=[
            OrderItem(
                category=i.category,
                condition=ItemCondition(i.condition),
                quantity=i.quantity,
                estimated_price=i.estimated_price,
            )
            for i in body.items
        ],
        priority=OrderPriority(body.priority),
        pickup_charges=body.pickup_charges,
    )
    return {"success": True, "data": ser.order_json(order, include_pin=True)}


@router.get("/orders")
def list_orders(
    status: Optional[OrderStatusName] = None,
    customer_id: Optional[str] = Query(None, alias="customerId"),
    s: Services = Depends(get_services),
) -> dict:
    orders = s.orders.list_orders(
        status=OrderStatus(status) if status else None, customer_id=customer_id
    )
    return {"success": True, "count": len(orders), "data": [ser.order_json(o) for o in orders]}


@router.get("/orders/{order_id}")
def get_order(order_id: str, s: Services = Depends(get_services)) -> dict:
    return {"success": True, "data": ser.order_json(s.orders.get_order(order_id))}


@router.get("/orders/{order_id}/suggested-agent")
def suggested_agent(order_id: str, s: Services = Depends(get_services)) -> dict:
    return {"success": True, "data": ser.suggestion_json(s.engine.suggest_agent(order_id))}


@router.put("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    body: OrderStatusRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    order = s.orders.update_status(
        order_id,
        OrderStatus(body.status),
        updated_by=body.pickup_boy_id or actor.id,
        note=body.note,
        actual_total=body.actual_total,
        acting_agent_id=body.pickup_boy_id,
    )
    return {"success": True, "data": ser.order_json(order)}


@router.put("/orders/{order_id}/cancel")
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    order = s.orders.cancel_order(
        order_id,
        cancelled_by=actor.id,
        reason=body.reason,
        customer_id=None if actor.staff else actor.id,
    )
    return {"success": True, "data": ser.order_json(order), "message": "Order cancelled"}


@router.put("/orders/{order_id}/verify")
def verify_pickup(
    order_id: str, body: VerifyPinRequest, s: Services = Depends(get_services)
) -> dict:
    order = s.orders.verify_pickup_pin(order_id, body.pickup_boy_id, body.pin)
    return {"success": True, "data": ser.order_json(order), "message": "PIN verified"}


@router.put("/orders/{order_id}/priority")
def update_priority(
    order_id: str, body: PriorityRequest, s: Services = Depends(get_services)
) -> dict:
    order = s.orders.update_priority(order_id, OrderPriority(body.priority))
    return {"success": True, "data": ser.order_json(order)}


# ─────────────────────────────────────────────────────────────────────────────
# Pickup agents
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/users/pickup-boys", status_code=201)
def register_pickup_boy(
    body: RegisterAgentRequest, s: Services = Depends(get_services)
) -> dict:
    agent = s.agents.register_agent(
        first_name=body.first_name,
        last_name=body.last_name,
        address=_address(body.address),
        email=body.email,
        phone=body.phone,
        max_capacity=body.max_capacity,
        agent_id=body.id,
    )
    return {"success": True, "data": ser.agent_json(agent)}


@router.get("/users/pickup-boys/{agent_id}/assigned")
def assigned_orders(agent_id: str, s: Services = Depends(get_services)) -> dict:
    orders = s.orders.assigned_orders(agent_id)
    return {"success": True, "count": len(orders), "data": [ser.order_json(o) for o in orders]}


@router.put("/users/{agent_id}/status")
def set_agent_status(
    agent_id: str, body: AgentStatusRequest, s: Services = Depends(get_services)
) -> dict:
    agent = s.agents.set_active(agent_id, body.is_active)
    return {"success": True, "data": ser.agent_json(agent)}


# ─────────────────────────────────────────────────────────────────────────────
# Support tickets
# ─────────────────────────────────────────────────────────────────────────────


@router.post("/support", status_code=201)
def create_ticket(
    body: TicketCreateRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    ticket = s.tickets.create_ticket(
        customer_id=actor.id,
        subject=body.subject,
        description=body.description,
        category=TicketCategory(body.category),
        priority=OrderPriority(body.priority),
        order_id=body.order_id,
        tags=body.tags,
    )
    return {"success": True, "data": ser.ticket_json(ticket)}


@router.get("/support")
def list_tickets(
    status: Optional[TicketStatusName] = None,
    priority: Optional[PriorityName] = None,
    category: Optional[TicketCategoryName] = None,
    page: int = 1,
    limit: int = 10,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    result = s.tickets.list_tickets(
        status=TicketStatus(status) if status else None,
        priority=OrderPriority(priority) if priority else None,
        category=TicketCategory(category) if category else None,
        customer_id=None if actor.staff else actor.id,
        page=page,
        limit=limit,
    )
    return ser.ticket_page_json(result)


@router.get("/support/stats")
def ticket_stats(s: Services = Depends(get_services)) -> dict:
    return {"success": True, "data": ser.ticket_stats_json(s.tickets.stats())}


@router.get("/support/{ticket_id}")
def get_ticket(
    ticket_id: str,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    ticket = s.tickets.get_ticket(ticket_id, viewer_id=actor.id, staff=actor.staff)
    return {"success": True, "data": ser.ticket_json(ticket)}


@router.post("/support/{ticket_id}/messages")
def add_ticket_message(
    ticket_id: str,
    body: TicketMessageRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    ticket = s.tickets.add_message(
        ticket_id, actor.id, body.message, staff=actor.staff, is_internal=body.is_internal
    )
    return {"success": True, "data": ser.ticket_json(ticket)}


@router.put("/support/{ticket_id}/status")
def update_ticket_status(
    ticket_id: str,
    body: TicketStatusRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    ticket = s.tickets.update_status(
        ticket_id, TicketStatus(body.status), actor.id, body.resolution_note
    )
    return {"success": True, "data": ser.ticket_json(ticket)}


@router.put("/support/{ticket_id}/assign")
def assign_ticket(
    ticket_id: str, body: TicketAssignRequest, s: Services = Depends(get_services)
) -> dict:
    ticket = s.tickets.assign_ticket(ticket_id, body.assigned_to)
    return {"success": True, "data": ser.ticket_json(ticket)}


@router.put("/support/{ticket_id}/rate")
def rate_ticket(
    ticket_id: str,
    body: TicketRateRequest,
    actor: Actor = Depends(get_actor),
    s: Services = Depends(get_services),
) -> dict:
    ticket = s.tickets.rate_ticket(ticket_id, actor.id, body.rating, body.feedback)
    return {"success": True, "data": ser.ticket_json(ticket)}

"""
Typed errors raised by the assignment engine and the order/ticket services.

Each error carries a stable `code` (used as the per-order failure reason in
batch results) and the HTTP status the API layer maps it to. Capacity and
eligibility failures are not retryable with the same agent; infrastructure
failures are.
"""

from __future__ import annotations


class AssignmentError(Exception):
    """Root of the engine's error taxonomy."""

    code: str = "AssignmentError"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "retryable": self.retryable}


# ── 404 ──────────────────────────────────────────────────────────


class NotFoundError(AssignmentError):
    code = "NotFound"
    http_status = 404


class OrderNotFound(NotFoundError):
    code = "OrderNotFound"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found with id of {order_id}", order_id=order_id)


class AgentNotFound(NotFoundError):
    code = "AgentNotFound"

    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Pickup agent not found with id of {agent_id}", agent_id=agent_id)


class TicketNotFound(NotFoundError):
    code = "TicketNotFound"

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Support ticket not found with id of {ticket_id}", ticket_id=ticket_id)


# ── 409 ──────────────────────────────────────────────────────────


class ConflictError(AssignmentError):
    code = "Conflict"
    http_status = 409


class OrderAlreadyAssigned(ConflictError):
    code = "OrderAlreadyAssigned"

    def __init__(self, order_id: str, agent_id: str | None) -> None:
        super().__init__(
            f"Order {order_id} is already assigned to {agent_id}",
            order_id=order_id,
            agent_id=agent_id,
        )


class OrderNotAssignable(ConflictError):
    """The order's status does not allow the requested (re)assignment."""

    code = "OrderNotAssignable"


class OrderNotAssigned(ConflictError):
    code = "OrderNotAssigned"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} has no assigned agent", order_id=order_id)


class AgentNotEligible(ConflictError):
    code = "AgentNotEligible"


class AgentAtCapacity(ConflictError):
    code = "AgentAtCapacity"

    def __init__(self, agent_id: str, active_orders: int, max_capacity: int) -> None:
        super().__init__(
            f"Pickup agent {agent_id} is at capacity ({active_orders}/{max_capacity})",
            agent_id=agent_id,
            active_orders=active_orders,
            max_capacity=max_capacity,
        )


class ConcurrentModification(ConflictError):
    """The records changed underneath the transaction on every attempt."""

    code = "ConcurrentModification"


class InvalidStatusTransition(ConflictError):
    code = "InvalidStatusTransition"

    def __init__(self, entity: str, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move {entity} from {current} to {requested}",
            current=current,
            requested=requested,
        )


# ── 400 ──────────────────────────────────────────────────────────


class ValidationError(AssignmentError):
    code = "ValidationError"
    http_status = 400


class InvalidPin(ValidationError):
    code = "InvalidPin"

    def __init__(self) -> None:
        super().__init__("Invalid PIN")


class NotAuthorized(AssignmentError):
    code = "NotAuthorized"
    http_status = 403


# ── 503 ──────────────────────────────────────────────────────────


class InfrastructureError(AssignmentError):
    """Datastore unavailable or timed out. Safe to retry."""

    code = "InfrastructureError"
    http_status = 503
    retryable = True

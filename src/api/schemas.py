"""
Request bodies for the pickup API.

Field names are snake_case in Python and camelCase on the wire, matching
what the dashboard sends.
"""

from __future__ import annotations

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TimeSlotName = Literal["morning", "afternoon", "evening"]
PriorityName = Literal["low", "medium", "high", "urgent"]
ConditionName = Literal["excellent", "good", "fair", "poor", "broken"]
OrderStatusName = Literal[
    "pending",
    "confirmed",
    "assigned",
    "in_transit",
    "picked_up",
    "processing",
    "completed",
    "cancelled",
]
TicketStatusName = Literal["open", "in_progress", "waiting_customer", "resolved", "closed"]
TicketCategoryName = Literal[
    "order_issue",
    "payment_issue",
    "pickup_issue",
    "account_issue",
    "general_inquiry",
    "complaint",
    "feedback",
]


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Assignment ───────────────────────────────────────────────────


class AssignRequest(ApiModel):
    pickup_boy_id: str = Field(..., alias="pickupBoyId", min_length=1)


class BulkAssignItem(ApiModel):
    order_id: str = Field(..., alias="orderId", min_length=1)
    pickup_boy_id: str = Field(..., alias="pickupBoyId", min_length=1)


class BulkAssignRequest(ApiModel):
    assignments: List[BulkAssignItem] = Field(default_factory=list)


class AutoAssignRequest(ApiModel):
    city: Optional[str] = None
    pincode: Optional[str] = None
    # Range is checked by the engine so that a bad value is a 400, not a 422.
    max_assignments: Optional[int] = Field(None, alias="maxAssignments")


class ReassignRequest(ApiModel):
    new_pickup_boy_id: str = Field(..., alias="newPickupBoyId", min_length=1)
    reason: Optional[str] = Field(None, max_length=500)


class NotifyAssignmentRequest(ApiModel):
    order_id: str = Field(..., alias="orderId", min_length=1)


# ── Orders ───────────────────────────────────────────────────────


class AddressIn(ApiModel):
    street: str = ""
    city: str = Field(..., min_length=1)
    state: str = ""
    pincode: str = Field(..., description="6-digit postal code")
    landmark: Optional[str] = None


class OrderItemIn(ApiModel):
    category: str = Field(..., min_length=1)
    condition: ConditionName = "good"
    quantity: int = Field(1, gt=0)
    estimated_price: float = Field(..., alias="estimatedPrice", ge=0)


class CreateOrderRequest(ApiModel):
    customer_id: str = Field(..., alias="customerId", min_length=1)
    pickup_address: AddressIn = Field(..., alias="pickupAddress")
    preferred_pickup_date: date = Field(..., alias="preferredPickupDate")
    time_slot: TimeSlotName = Field(..., alias="timeSlot")
    items: List[OrderItemIn]
    priority: PriorityName = "medium"
    pickup_charges: float = Field(0.0, alias="pickupCharges", ge=0)


class OrderStatusRequest(ApiModel):
    status: OrderStatusName
    note: Optional[str] = None
    actual_total: Optional[float] = Field(None, alias="actualTotal", ge=0)
    # Set when a pickup agent (rather than an admin) updates its own order.
    pickup_boy_id: Optional[str] = Field(None, alias="pickupBoyId")


class CancelOrderRequest(ApiModel):
    reason: Optional[str] = Field(None, max_length=500)


class VerifyPinRequest(ApiModel):
    pickup_boy_id: str = Field(..., alias="pickupBoyId", min_length=1)
    pin: str = Field(..., min_length=1)


class PriorityRequest(ApiModel):
    priority: PriorityName


# ── Agents ───────────────────────────────────────────────────────


class RegisterAgentRequest(ApiModel):
    id: Optional[str] = None
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field("", alias="lastName")
    email: str = ""
    phone: str = ""
    address: AddressIn
    max_capacity: Optional[int] = Field(None, alias="maxCapacity", ge=1)


class AgentStatusRequest(ApiModel):
    is_active: bool = Field(..., alias="isActive")


# ── Support ──────────────────────────────────────────────────────


class TicketCreateRequest(ApiModel):
    subject: str
    description: str
    category: TicketCategoryName
    priority: PriorityName = "medium"
    order_id: Optional[str] = Field(None, alias="orderId")
    tags: List[str] = Field(default_factory=list)


class TicketMessageRequest(ApiModel):
    message: str
    is_internal: bool = Field(False, alias="isInternal")


class TicketStatusRequest(ApiModel):
    status: TicketStatusName
    resolution_note: Optional[str] = Field(None, alias="resolutionNote")


class TicketAssignRequest(ApiModel):
    assigned_to: str = Field(..., alias="assignedTo", min_length=1)


class TicketRateRequest(ApiModel):
    rating: int
    feedback: str = ""

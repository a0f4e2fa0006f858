from src.pickups.config import EngineConfig, load_config
from src.pickups.models import (
    Address,
    Agent,
    AssignmentEvent,
    Order,
    OrderItem,
    OrderPriority,
    OrderStatus,
    Pricing,
    TimeSlot,
)
from src.pickups.logs import configure_logging

__all__ = [
    "EngineConfig",
    "load_config",
    "Address",
    "Agent",
    "AssignmentEvent",
    "Order",
    "OrderItem",
    "OrderPriority",
    "OrderStatus",
    "Pricing",
    "TimeSlot",
    "configure_logging",
]

from src.support.tickets import (
    SupportTicket,
    TicketCategory,
    TicketService,
    TicketStats,
    TicketStatus,
)

__all__ = [
    "SupportTicket",
    "TicketCategory",
    "TicketService",
    "TicketStats",
    "TicketStatus",
]

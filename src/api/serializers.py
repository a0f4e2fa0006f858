"""Model → JSON-ready dict conversion for API responses (camelCase keys)."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.assignment.engine import Suggestion
    from src.assignment.orchestrator import AutoAssignResult, BulkItemResult, BulkResult
    from src.assignment.statistics import AssignmentAnalytics, AssignmentStatistics, Distribution
    from src.assignment.workload import AgentWorkload, AvailabilitySummary, Workload
    from src.pickups.lifecycle import AgentPerformanceReport
    from src.pickups.models import Address, Agent, Order
    from src.support.tickets import SupportTicket, TicketPage, TicketStats


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value is not None else None


def address_json(address: Address) -> dict:
    return {
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "pincode": address.pincode,
        "landmark": address.landmark,
    }


def order_json(order: Order, include_pin: bool = False) -> dict:
    data = {
        "id": order.id,
        "orderNumber": order.order_number,
        "customerId": order.customer_id,
        "pickupAddress": address_json(order.address),
        "preferredPickupDate": _iso(order.preferred_date),
        "timeSlot": order.time_slot.value,
        "items": [
            {
                "category": i.category,
                "condition": i.condition.value,
                "quantity": i.quantity,
                "estimatedPrice": i.estimated_price,
                "finalPrice": i.final_price,
            }
            for i in order.items
        ],
        "pricing": {
            "estimatedTotal": order.pricing.estimated_total,
            "actualTotal": order.pricing.actual_total,
            "pickupCharges": order.pricing.pickup_charges,
            "finalAmount": order.pricing.final_amount,
        },
        "status": order.status.value,
        "priority": order.priority.value,
        "assignedPickupBoy": order.assigned_agent_id,
        "pinVerified": order.pin_verified,
        "timeline": [
            {
                "status": t.status.value,
                "timestamp": _iso(t.timestamp),
                "updatedBy": t.updated_by,
                "note": t.note,
            }
            for t in order.timeline
        ],
        "createdAt": _iso(order.created_at),
        "updatedAt": _iso(order.updated_at),
        "assignedAt": _iso(order.assigned_at),
        "completedAt": _iso(order.completed_at),
    }
    if include_pin:
        data["pin"] = order.pin
    return data


def agent_json(agent: Agent) -> dict:
    return {
        "id": agent.id,
        "firstName": agent.first_name,
        "lastName": agent.last_name,
        "email": agent.email,
        "phone": agent.phone,
        "role": agent.role,
        "isActive": agent.is_active,
        "address": address_json(agent.address),
        "activeOrders": agent.active_orders,
        "maxCapacity": agent.max_capacity,
    }


def workload_json(workload: Workload) -> dict:
    return {
        "activeOrders": workload.active_orders,
        "todayOrders": workload.today_orders,
        "weekCompletedOrders": workload.week_completed_orders,
        "maxCapacity": workload.max_capacity,
        "availabilityStatus": workload.availability_status.value,
        "canTakeNewOrder": workload.can_take_new_order,
    }


def agent_workload_json(row: AgentWorkload) -> dict:
    return {
        **agent_json(row.agent),
        "workload": workload_json(row.workload),
        "performance": {
            "weeklyCompletions": row.performance.weekly_completions,
            "totalAssigned": row.performance.total_assigned,
            "totalCompleted": row.performance.total_completed,
            "efficiency": row.performance.efficiency.value,
        },
    }


def summary_json(summary: AvailabilitySummary) -> dict:
    return {
        "available": summary.available,
        "busy": summary.busy,
        "overloaded": summary.overloaded,
        "canTakeOrders": summary.can_take_orders,
    }


def performance_json(report: AgentPerformanceReport) -> dict:
    return {
        "pickupBoy": agent_json(report.agent),
        "totalAssigned": report.total_assigned,
        "totalCompleted": report.total_completed,
        "completionRate": report.completion_rate,
        "monthlyCompleted": report.monthly_completed,
        "weeklyCompleted": report.weekly_completed,
        "activeOrders": report.active_orders,
        "efficiency": report.efficiency.value,
        "status": report.status,
    }


def suggestion_json(suggestion: Suggestion) -> dict:
    return {
        "orderId": suggestion.order.id,
        "suggested": agent_workload_json(suggestion.selected) if suggestion.selected else None,
        "ranked": [agent_workload_json(r) for r in suggestion.ranked],
    }


def _bulk_item_json(item: BulkItemResult) -> dict:
    data = {"orderId": item.order_id, "pickupBoyId": item.agent_id, "success": item.success}
    if item.success:
        data["orderNumber"] = item.order_number
    else:
        data.update({"error": item.error, "code": item.code, "retryable": item.retryable})
    return data


def bulk_json(result: BulkResult) -> dict:
    return {
        "successful": result.successful,
        "failed": result.failed,
        "results": [_bulk_item_json(r) for r in result.results],
        "errors": [_bulk_item_json(r) for r in result.errors],
    }


def auto_json(result: AutoAssignResult) -> dict:
    return {
        "assigned": result.assigned,
        "assignments": [
            {
                "orderId": a.order_id,
                "orderNumber": a.order_number,
                "pickupBoyId": a.agent_id,
                "pickupBoyName": a.agent_name,
            }
            for a in result.assignments
        ],
        "skipped": [
            {"orderId": s.order_id, "orderNumber": s.order_number, "reason": s.reason}
            for s in result.skipped
        ],
        "stopped": result.stopped,
    }


def statistics_json(stats: AssignmentStatistics) -> dict:
    return {
        "timeframe": stats.timeframe,
        "pendingAssignments": stats.pending_assignments,
        "todayAssigned": stats.today_assigned,
        "autoAssignedToday": stats.auto_assigned_today,
        "averageAssignmentTime": stats.average_assignment_time,
        "averageAssignmentMinutes": stats.average_assignment_minutes,
        "p95AssignmentMinutes": stats.p95_assignment_minutes,
        "completionRate": stats.completion_rate,
        "totalRevenue": stats.total_revenue,
        "totalOrders": stats.total_orders,
        "completedOrders": stats.completed_orders,
        "failedAttempts": stats.failed_attempts,
    }


def _distribution_json(rows: list[Distribution]) -> list[dict]:
    return [
        {"label": d.label, "assignments": d.assignments, "percentage": d.percentage} for d in rows
    ]


def analytics_json(analytics: AssignmentAnalytics) -> dict:
    return {
        "period": analytics.period,
        "totalAssignments": analytics.total_assignments,
        "successfulAssignments": analytics.successful_assignments,
        "reassignments": analytics.reassignments,
        "averageResponseMinutes": analytics.average_response_minutes,
        "agentUtilization": analytics.agent_utilization_pct,
        "cityDistribution": _distribution_json(analytics.city_distribution),
        "timeSlotDistribution": _distribution_json(analytics.time_slot_distribution),
    }


def ticket_json(ticket: SupportTicket) -> dict:
    return {
        "id": ticket.id,
        "ticketNumber": ticket.ticket_number,
        "customerId": ticket.customer_id,
        "orderId": ticket.order_id,
        "subject": ticket.subject,
        "description": ticket.description,
        "category": ticket.category.value,
        "priority": ticket.priority.value,
        "status": ticket.status.value,
        "assignedTo": ticket.assigned_to,
        "messages": [
            {
                "senderId": m.sender_id,
                "message": m.message,
                "timestamp": _iso(m.timestamp),
                "isInternal": m.is_internal,
            }
            for m in ticket.messages
        ],
        "resolution": (
            {
                "resolvedBy": ticket.resolution.resolved_by,
                "resolvedAt": _iso(ticket.resolution.resolved_at),
                "resolutionNote": ticket.resolution.note,
            }
            if ticket.resolution
            else None
        ),
        "customerRating": (
            {
                "rating": ticket.rating.score,
                "feedback": ticket.rating.feedback,
                "ratedAt": _iso(ticket.rating.rated_at),
            }
            if ticket.rating
            else None
        ),
        "tags": list(ticket.tags),
        "createdAt": _iso(ticket.created_at),
        "lastActivityAt": _iso(ticket.last_activity_at),
    }


def ticket_page_json(page: TicketPage) -> dict:
    pagination = {}
    if page.has_next:
        pagination["next"] = {"page": page.page + 1, "limit": page.limit}
    if page.page > 1:
        pagination["prev"] = {"page": page.page - 1, "limit": page.limit}
    return {
        "success": True,
        "count": len(page.tickets),
        "total": page.total,
        "pagination": pagination,
        "data": [ticket_json(t) for t in page.tickets],
    }


def ticket_stats_json(stats: TicketStats) -> dict:
    return {
        "total": stats.total,
        "open": stats.open,
        "inProgress": stats.in_progress,
        "waitingCustomer": stats.waiting_customer,
        "resolved": stats.resolved,
        "closed": stats.closed,
        "urgent": stats.urgent,
        "high": stats.high,
        "thisWeek": stats.this_week,
    }

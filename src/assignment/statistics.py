"""
Assignment statistics and analytics.

Everything here is derived on read by scanning orders, agents and the
assignment-event log; no statistic is stored or incremented separately, so
the numbers cannot drift from the underlying state.

KPIs:
- Pending assignments (current backlog)
- Orders assigned today, and how many of those by auto-assignment
- Average / p95 time from order creation to first assignment
- Completion rate of orders created within the timeframe
- Revenue of orders completed within the timeframe
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

import numpy as np

from src.pickups.clock import (
    Clock,
    start_of_day,
    start_of_month,
    start_of_week,
    start_of_year,
    utcnow,
)
from src.pickups.errors import ValidationError
from src.pickups.models import AssignmentEvent, EventKind, OrderStatus

if TYPE_CHECKING:
    from src.store.repository import PickupRepository


TIMEFRAMES = ("today", "week", "month", "year", "all")


@dataclass
class AssignmentStatistics:
    """Dashboard statistics for one timeframe."""

    timeframe: str
    pending_assignments: int = 0
    today_assigned: int = 0
    auto_assigned_today: int = 0
    average_assignment_minutes: float = 0.0
    p95_assignment_minutes: float = 0.0
    completion_rate: float = 0.0  # percent, 2 decimals
    total_revenue: float = 0.0
    total_orders: int = 0
    completed_orders: int = 0
    failed_attempts: int = 0

    @property
    def average_assignment_time(self) -> str:
        return f"{round(self.average_assignment_minutes)} min"


@dataclass
class Distribution:
    label: str
    assignments: int
    percentage: float


@dataclass
class AssignmentAnalytics:
    """Assignment breakdown for one period."""

    period: str
    total_assignments: int = 0
    successful_assignments: int = 0
    reassignments: int = 0
    average_response_minutes: float = 0.0
    agent_utilization_pct: float = 0.0
    city_distribution: list[Distribution] = field(default_factory=list)
    time_slot_distribution: list[Distribution] = field(default_factory=list)


def window_start(timeframe: str, now: datetime) -> datetime | None:
    """Start of the reporting window, None for "all"."""

    if timeframe not in TIMEFRAMES:
        raise ValidationError(
            f"Unknown timeframe '{timeframe}', expected one of {', '.join(TIMEFRAMES)}"
        )
    return {
        "today": start_of_day,
        "week": start_of_week,
        "month": start_of_month,
        "year": start_of_year,
        "all": lambda _: None,
    }[timeframe](now)


def _in_window(ts: datetime | None, start: datetime | None) -> bool:
    return ts is not None and (start is None or ts >= start)


def _distribution(counts: Counter) -> list[Distribution]:
    total = sum(counts.values())
    return [
        Distribution(label, n, round(n / total * 100, 2) if total else 0.0)
        for label, n in counts.most_common()
    ]


class StatisticsAggregator:
    """Computes statistics from the repository on every call.

    Usage:
        stats = StatisticsAggregator(repo).get_statistics("week")
        print(stats.today_assigned, stats.completion_rate)
    """

    def __init__(self, repo: PickupRepository, clock: Clock = utcnow) -> None:
        self.repo = repo
        self.clock = clock

    def get_statistics(self, timeframe: str = "today") -> AssignmentStatistics:
        now = self.clock()
        start = window_start(timeframe, now)
        today_start = start_of_day(now)

        orders = self.repo.orders()
        events = self.repo.events()
        created_at = {o.id: o.created_at for o in orders}

        stats = AssignmentStatistics(timeframe=timeframe)
        stats.pending_assignments = sum(1 for o in orders if o.awaiting_assignment)

        first_assign = [e for e in events if e.success and e.kind == EventKind.ASSIGN]
        today = [e for e in first_assign if e.timestamp >= today_start]
        stats.today_assigned = len(today)
        stats.auto_assigned_today = sum(1 for e in today if e.is_auto)
        stats.failed_attempts = sum(
            1 for e in events if not e.success and _in_window(e.timestamp, start)
        )

        latencies = self._latencies_minutes(
            [e for e in first_assign if _in_window(e.timestamp, start)], created_at
        )
        if latencies.size:
            stats.average_assignment_minutes = round(float(np.mean(latencies)), 2)
            stats.p95_assignment_minutes = round(float(np.percentile(latencies, 95)), 2)

        window_orders = [o for o in orders if _in_window(o.created_at, start)]
        live = [o for o in window_orders if o.status != OrderStatus.CANCELLED]
        completed = [o for o in live if o.status == OrderStatus.COMPLETED]
        stats.total_orders = len(window_orders)
        stats.completed_orders = len(completed)
        stats.completion_rate = round(len(completed) / len(live) * 100, 2) if live else 0.0

        stats.total_revenue = round(
            sum(
                o.revenue
                for o in orders
                if o.status == OrderStatus.COMPLETED and _in_window(o.completed_at, start)
            ),
            2,
        )
        return stats

    def get_analytics(self, period: str = "month") -> AssignmentAnalytics:
        now = self.clock()
        start = window_start(period, now)
        orders = {o.id: o for o in self.repo.orders()}
        events = [e for e in self.repo.events() if _in_window(e.timestamp, start)]

        analytics = AssignmentAnalytics(period=period)
        analytics.total_assignments = len(events)
        successful = [e for e in events if e.success]
        analytics.successful_assignments = len(successful)
        analytics.reassignments = sum(1 for e in successful if e.kind == EventKind.REASSIGN)

        latencies = self._latencies_minutes(
            [e for e in successful if e.kind == EventKind.ASSIGN],
            {oid: o.created_at for oid, o in orders.items()},
        )
        if latencies.size:
            analytics.average_response_minutes = round(float(np.mean(latencies)), 2)

        agents = self.repo.agents(lambda a: a.is_active)
        if agents:
            ratios = [a.active_orders / a.max_capacity * 100 for a in agents if a.max_capacity > 0]
            analytics.agent_utilization_pct = round(float(np.mean(ratios)), 2) if ratios else 0.0

        cities: Counter = Counter()
        slots: Counter = Counter()
        for e in successful:
            order = orders.get(e.order_id)
            if order is None:
                continue
            cities[order.address.city] += 1
            slots[order.time_slot.value] += 1
        analytics.city_distribution = _distribution(cities)
        analytics.time_slot_distribution = _distribution(slots)
        return analytics

    def assignment_latencies(self, timeframe: str = "all") -> list[float]:
        """Minutes from order creation to first assignment, per order."""
        start = window_start(timeframe, self.clock())
        created_at = {o.id: o.created_at for o in self.repo.orders()}
        events = [
            e
            for e in self.repo.events()
            if e.success and e.kind == EventKind.ASSIGN and _in_window(e.timestamp, start)
        ]
        return self._latencies_minutes(events, created_at).tolist()

    @staticmethod
    def _latencies_minutes(
        events: list[AssignmentEvent], created_at: dict[str, datetime]
    ) -> np.ndarray:
        values = [
            (e.timestamp - created_at[e.order_id]).total_seconds() / 60.0
            for e in events
            if e.order_id in created_at
        ]
        return np.asarray(values, dtype=np.float64)

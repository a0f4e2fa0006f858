"""
Pickup workload visualization.

Renders:
- Agent workload: active orders against capacity per agent, coloured by
  availability status, with the available / overloaded thresholds marked
- Assignment dashboard: workload + assignment events per day + the
  distribution of order-to-assignment latency

Usage:
    from src.analysis.visualizations import plot_workload
    rows, _ = engine.availability(city="Pune")
    fig = plot_workload(rows)
    fig.savefig("workload.png", dpi=150, bbox_inches="tight")
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import TYPE_CHECKING

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np

from src.pickups.config import CapacityConfig
from src.pickups.models import AssignmentEvent, AvailabilityStatus, EventKind

if TYPE_CHECKING:
    from matplotlib.axes import Axes
    from matplotlib.figure import Figure

    from src.assignment.workload import AgentWorkload


# ── Styling constants ────────────────────────────────────────────

STATUS_COLORS: dict[AvailabilityStatus, str] = {
    AvailabilityStatus.AVAILABLE: "#31a354",
    AvailabilityStatus.BUSY: "#fd8d3c",
    AvailabilityStatus.OVERLOADED: "#de2d26",
}
CAPACITY_COLOR = "#d9d9d9"
ASSIGN_COLOR = "#6baed6"
REASSIGN_COLOR = "#9e9ac8"
FAILED_COLOR = "#969696"


def plot_workload(
    rows: list[AgentWorkload],
    title: str | None = None,
    capacity: CapacityConfig | None = None,
    ax: Axes | None = None,
) -> Figure:
    """Horizontal bars: capacity (grey) behind active orders (status colour)."""

    capacity = capacity or CapacityConfig()
    if ax is None:
        fig, ax = plt.subplots(figsize=(10, max(3.0, 0.45 * len(rows) + 1.5)))
    else:
        fig = ax.figure

    if not rows:
        ax.text(0.5, 0.5, "No pickup agents", ha="center", va="center", transform=ax.transAxes)
        ax.set_axis_off()
        return fig

    names = [r.agent.full_name or r.agent.id for r in rows]
    y = np.arange(len(rows))
    caps = [r.workload.max_capacity for r in rows]
    active = [r.workload.active_orders for r in rows]
    colors = [STATUS_COLORS[r.workload.availability_status] for r in rows]

    ax.barh(y, caps, color=CAPACITY_COLOR, edgecolor="white", height=0.7)
    bars = ax.barh(y, active, color=colors, edgecolor="white", height=0.5)
    for bar, n, cap in zip(bars, active, caps):
        ax.text(
            max(bar.get_width(), 0) + 0.1,
            bar.get_y() + bar.get_height() / 2,
            f"{n}/{cap}",
            va="center",
            fontsize=8,
            fontweight="bold",
        )

    # Threshold ticks per agent: available ratio and overloaded ratio.
    for yi, cap in zip(y, caps):
        for ratio, style in ((capacity.available_ratio, ":"), (capacity.overloaded_ratio, "--")):
            x = ratio * cap
            ax.plot([x, x], [yi - 0.35, yi + 0.35], color="#525252", linestyle=style, linewidth=1)

    ax.set_yticks(y)
    ax.set_yticklabels(names, fontsize=9)
    ax.invert_yaxis()
    ax.set_xlabel("Active orders")
    ax.set_title(title or "Pickup Agent Workload", fontsize=11, fontweight="bold")
    ax.grid(True, axis="x", alpha=0.2)
    ax.legend(
        handles=[mpatches.Patch(color=c, label=s.value) for s, c in STATUS_COLORS.items()]
        + [mpatches.Patch(color=CAPACITY_COLOR, label="capacity")],
        loc="lower right",
        fontsize=8,
    )
    return fig


def _events_per_day(ax: Axes, events: list[AssignmentEvent]) -> None:
    assigned: Counter = Counter()
    reassigned: Counter = Counter()
    failed: Counter = Counter()
    for e in events:
        day = e.timestamp.date()
        if not e.success:
            failed[day] += 1
        elif e.kind == EventKind.REASSIGN:
            reassigned[day] += 1
        else:
            assigned[day] += 1

    days: list[date] = sorted(set(assigned) | set(reassigned) | set(failed))
    if not days:
        ax.text(0.5, 0.5, "No assignment events", ha="center", va="center", transform=ax.transAxes)
        ax.set_axis_off()
        return

    x = np.arange(len(days))
    a = np.array([assigned[d] for d in days])
    r = np.array([reassigned[d] for d in days])
    f = np.array([failed[d] for d in days])
    ax.bar(x, a, color=ASSIGN_COLOR, label="assigned")
    ax.bar(x, r, bottom=a, color=REASSIGN_COLOR, label="reassigned")
    ax.bar(x, f, bottom=a + r, color=FAILED_COLOR, label="failed")
    ax.set_xticks(x)
    ax.set_xticklabels([d.strftime("%m-%d") for d in days], rotation=45, fontsize=8)
    ax.set_ylabel("# Events")
    ax.set_title("Assignment Events per Day", fontsize=11, fontweight="bold")
    ax.legend(fontsize=8)


def _latency_histogram(ax: Axes, latencies_min: list[float]) -> None:
    if latencies_min:
        ax.hist(latencies_min, bins=20, color=ASSIGN_COLOR, edgecolor="white", alpha=0.8)
        ax.axvline(
            np.mean(latencies_min),
            color="#e6550d",
            linestyle="--",
            linewidth=1.5,
            label=f"Mean: {np.mean(latencies_min):.0f} min",
        )
        ax.axvline(
            np.percentile(latencies_min, 95),
            color="#de2d26",
            linestyle=":",
            linewidth=1.5,
            label=f"P95: {np.percentile(latencies_min, 95):.0f} min",
        )
        ax.legend(fontsize=8)
    ax.set_xlabel("Order created → assigned (min)")
    ax.set_ylabel("# Orders")
    ax.set_title("Assignment Latency", fontsize=11, fontweight="bold")


def plot_assignment_dashboard(
    rows: list[AgentWorkload],
    events: list[AssignmentEvent],
    latencies_min: list[float],
    capacity: CapacityConfig | None = None,
) -> Figure:
    """Three-panel summary: workload + events per day + latency histogram."""

    fig, axes = plt.subplots(1, 3, figsize=(18, 6))
    plot_workload(rows, capacity=capacity, ax=axes[0])
    _events_per_day(axes[1], events)
    _latency_histogram(axes[2], latencies_min)

    n_ok = sum(1 for e in events if e.success)
    fig.suptitle(
        f"Assignment Summary: {len(rows)} agents, {n_ok} assignments",
        fontsize=13,
        fontweight="bold",
        y=1.02,
    )
    fig.tight_layout()
    return fig

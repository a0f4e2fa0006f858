"""
Engine configuration dataclasses and YAML loader.

All assignment-engine parameters live here as typed, frozen dataclasses.
Load from YAML with `load_config()` or construct directly for tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml


@dataclass(frozen=True)
class CapacityConfig:
    """Agent capacity ceiling and availability thresholds.

    Availability is classified on the load ratio active_orders / max_capacity:
    at or below `available_ratio` the agent is available, below
    `overloaded_ratio` busy, otherwise overloaded.
    """

    max_capacity: int = 8
    available_ratio: float = 0.5
    overloaded_ratio: float = 1.0


@dataclass(frozen=True)
class EligibilityConfig:
    """Geographic matching between an order's pickup address and an agent."""

    region_policy: Literal["city", "pincode", "pincode_prefix"] = "city"
    pincode_prefix_length: int = 3


@dataclass(frozen=True)
class AutoAssignConfig:
    """Bounds for one auto-assignment run."""

    default_max_assignments: int = 10
    max_assignments_limit: int = 200
    request_deadline_s: float = 25.0  # time budget of one HTTP-triggered run


@dataclass(frozen=True)
class TransactionConfig:
    """Optimistic-concurrency behaviour of the assignment transaction."""

    conflict_retries: int = 1  # re-read + retry this many times on a version conflict


@dataclass(frozen=True)
class PerformanceConfig:
    """Efficiency classification on completed / assigned."""

    high_efficiency_ratio: float = 0.8
    medium_efficiency_ratio: float = 0.5
    busy_active_orders: int = 5  # performance view reports "busy" above this


@dataclass(frozen=True)
class NotificationConfig:
    """Best-effort notifications emitted after successful commits."""

    notify_on_assign: bool = True
    notify_previous_agent_on_reassign: bool = True


@dataclass(frozen=True)
class ApiConfig:
    """HTTP server runtime parameters."""

    cors_origins: tuple[str, ...] = ("http://localhost:5173", "http://127.0.0.1:5173")
    seed_path: str | None = None  # YAML fixtures loaded at startup
    log_level: str = "INFO"


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration aggregating all sub-configs."""

    capacity: CapacityConfig = field(default_factory=CapacityConfig)
    eligibility: EligibilityConfig = field(default_factory=EligibilityConfig)
    auto_assign: AutoAssignConfig = field(default_factory=AutoAssignConfig)
    transaction: TransactionConfig = field(default_factory=TransactionConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: ApiConfig = field(default_factory=ApiConfig)


def load_config(path: str | Path) -> EngineConfig:
    """Load an EngineConfig from a YAML file.

    Args:
        path: Path to a YAML config file.

    Returns:
        Fully constructed EngineConfig with all sub-configs.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    api_raw = dict(raw.get("api", {}))
    if "cors_origins" in api_raw:
        api_raw["cors_origins"] = tuple(api_raw["cors_origins"])

    return EngineConfig(
        capacity=CapacityConfig(**raw.get("capacity", {})),
        eligibility=EligibilityConfig(**raw.get("eligibility", {})),
        auto_assign=AutoAssignConfig(**raw.get("auto_assign", {})),
        transaction=TransactionConfig(**raw.get("transaction", {})),
        performance=PerformanceConfig(**raw.get("performance", {})),
        notifications=NotificationConfig(**raw.get("notifications", {})),
        api=ApiConfig(**api_raw),
    )

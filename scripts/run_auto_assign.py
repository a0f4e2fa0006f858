"""
run_auto_assign.py
──────────────────────────────────────────────────────────────────────────────
Seed an in-memory datastore from YAML fixtures, run one auto-assignment pass
and print what happened.

Usage:
    python scripts/run_auto_assign.py
    python scripts/run_auto_assign.py --city Pune --max 5
    python scripts/run_auto_assign.py --region-policy pincode_prefix
    python scripts/run_auto_assign.py --fixtures my_fixtures.yaml --deadline 2
"""

import argparse
from dataclasses import replace
from pathlib import Path

from src.assignment.engine import AssignmentEngine
from src.pickups.config import EngineConfig, load_config
from src.pickups.lifecycle import AgentService, OrderService
from src.pickups.logs import configure_logging
from src.store.fixtures import load_fixtures
from src.store.repository import PickupRepository


def main():
    """Main"""

    parser = argparse.ArgumentParser(description="Run one auto-assignment pass over fixtures")
    parser.add_argument("--config", type=str, default="config/default.yaml")
    parser.add_argument("--fixtures", type=str, default="config/sample_fixtures.yaml")
    parser.add_argument("--city", type=str, default=None, help="Only orders in this city")
    parser.add_argument("--pincode", type=str, default=None, help="Only orders in this pincode")
    parser.add_argument("--max", type=int, default=None, help="Max assignments for this run")
    parser.add_argument("--deadline", type=float, default=None, help="Time budget in seconds")
    parser.add_argument(
        "--region-policy",
        type=str,
        default=None,
        choices=["city", "pincode", "pincode_prefix"],
        help="Override the geographic eligibility rule",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    args = parser.parse_args()

    config_path = Path(args.config)
    if config_path.exists():
        config = load_config(config_path)
        print(f"Loaded config from {config_path}")
    else:
        print(f"Config {config_path} not found, using defaults")
        config = EngineConfig()
    if args.region_policy:
        config = replace(
            config, eligibility=replace(config.eligibility, region_policy=args.region_policy)
        )
    configure_logging("DEBUG" if args.verbose else "WARNING")

    repo = PickupRepository()
    engine = AssignmentEngine(repo, config)
    n_agents, n_orders = load_fixtures(
        args.fixtures, OrderService(repo, config), AgentService(repo, config), engine
    )
    print(f"Seeded {n_agents} agents and {n_orders} orders from {args.fixtures}")
    print(f"Pending before run: {len(engine.pending_orders(city=args.city))}")

    result = engine.auto_assign(
        city=args.city,
        pincode=args.pincode,
        max_assignments=args.max,
        deadline_s=args.deadline,
    )

    print(f"\n{'=' * 60}")
    print("AUTO-ASSIGNMENT RESULTS")
    print(f"{'=' * 60}")
    print(f"  Assigned:  {result.assigned}")
    print(f"  Skipped:   {len(result.skipped)}")
    print(f"  Stopped:   {result.stopped}")
    for a in result.assignments:
        print(f"  ✓ {a.order_number} → {a.agent_name}")
    for s in result.skipped:
        print(f"  ✗ {s.order_number}: {s.reason}")
    for w in result.warnings:
        print(f"  ⚠️  {w}")

    rows, summary = engine.availability()
    print("\nAgent workload:")
    for r in rows:
        w = r.workload
        print(
            f"  {r.agent.full_name:20s} {w.active_orders}/{w.max_capacity}"
            f"  {w.availability_status.value}"
        )
    print(
        f"\nAvailable: {summary.available}  Busy: {summary.busy}  "
        f"Overloaded: {summary.overloaded}  Can take orders: {summary.can_take_orders}"
    )

    stats = engine.get_statistics("today")
    print(f"Assigned today: {stats.today_assigned} ({stats.auto_assigned_today} automatic)")
    print(f"Average assignment time: {stats.average_assignment_time}")


if __name__ == "__main__":
    main()

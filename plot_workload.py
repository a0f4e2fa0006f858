"""
Generate pickup workload diagrams.

Seeds an in-memory datastore from YAML fixtures, runs one auto-assignment
pass and renders the agent workload chart. Outputs PNG files to the
current directory.

Usage:
    python plot_workload.py                                # Default fixtures
    python plot_workload.py --fixtures path/to/fixtures.yaml
    python plot_workload.py --output my_workload.png
    python plot_workload.py --city Pune                    # One city only
    python plot_workload.py --dashboard                    # Include events + latency panels
"""

import argparse
from pathlib import Path

from src.analysis.visualizations import plot_assignment_dashboard, plot_workload
from src.assignment.engine import AssignmentEngine
from src.pickups.config import EngineConfig, load_config
from src.pickups.lifecycle import AgentService, OrderService
from src.store.fixtures import load_fixtures
from src.store.repository import PickupRepository


def main():
    """Main function"""

    parser = argparse.ArgumentParser(
        description="Generate pickup workload diagrams",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config/default.yaml",
        help="Path to engine YAML config (default: config/default.yaml)",
    )
    parser.add_argument(
        "--fixtures",
        "-f",
        type=str,
        default="config/sample_fixtures.yaml",
        help="YAML fixtures to seed (default: config/sample_fixtures.yaml)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default="workload.png",
        help="Output PNG filename (default: workload.png)",
    )
    parser.add_argument("--city", type=str, default=None, help="Only agents in this city")
    parser.add_argument(
        "--no-auto",
        action="store_true",
        help="Skip the auto-assignment pass and plot the seeded state",
    )
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Also generate the three-panel dashboard (workload_dashboard.png)",
    )
    parser.add_argument("--dpi", type=int, default=150, help="Output image resolution")
    args = parser.parse_args()

    # ── Load config ──────────────────────────────────────────────
    config_path = Path(args.config)
    if config_path.exists():
        print(f"Loading config from: {config_path}")
        config = load_config(config_path)
    else:
        print("Using default config (no YAML found)")
        config = EngineConfig()

    # ── Seed + assign ────────────────────────────────────────────
    repo = PickupRepository()
    engine = AssignmentEngine(repo, config)
    load_fixtures(args.fixtures, OrderService(repo, config), AgentService(repo, config), engine)
    if not args.no_auto:
        result = engine.auto_assign(city=args.city)
        print(f"Auto-assigned {result.assigned} orders, skipped {len(result.skipped)}")

    rows, summary = engine.availability(city=args.city)
    print(
        f"{len(rows)} agents: {summary.available} available, {summary.busy} busy, "
        f"{summary.overloaded} overloaded"
    )

    # ── Workload plot ────────────────────────────────────────────
    title = f"Pickup Agent Workload: {args.city}" if args.city else None
    fig = plot_workload(rows, title=title, capacity=config.capacity)
    output_path = Path(args.output)
    fig.savefig(output_path, dpi=args.dpi, bbox_inches="tight")
    print(f"\n📊 Workload saved: {output_path}")

    # ── Optional dashboard ───────────────────────────────────────
    if args.dashboard:
        dash_path = output_path.with_name(output_path.stem + "_dashboard" + output_path.suffix)
        fig_dash = plot_assignment_dashboard(
            rows,
            repo.events(),
            engine.statistics.assignment_latencies("all"),
            capacity=config.capacity,
        )
        fig_dash.savefig(dash_path, dpi=args.dpi, bbox_inches="tight")
        print(f"📊 Dashboard saved: {dash_path}")

    print("\nDone.")


if __name__ == "__main__":
    main()

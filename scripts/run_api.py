"""Run the FastAPI backend for the pickup dashboard."""

from __future__ import annotations

import argparse
from dataclasses import replace
from pathlib import Path

import uvicorn

from src.api.server import create_app
from src.pickups.config import EngineConfig, load_config
from src.pickups.logs import configure_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="Run pickup assignment API server")
    parser.add_argument("--config", type=str, default="config/default.yaml")
    parser.add_argument("--host", type=str, default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument(
        "--seed",
        type=str,
        default=None,
        help="YAML fixtures to load at startup (e.g. config/sample_fixtures.yaml)",
    )
    args = parser.parse_args()

    config_path = Path(args.config)
    config = load_config(config_path) if config_path.exists() else EngineConfig()
    if args.seed:
        config = replace(config, api=replace(config.api, seed_path=args.seed))

    configure_logging(config.api.log_level)
    uvicorn.run(create_app(config), host=args.host, port=args.port)


if __name__ == "__main__":
    main()

"""Entry point for healthcore."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from healthcore.api.server import resolve_config_path
from healthcore.config import settings
from healthcore.connections import open_connections
from healthcore.health.config import load_health_config
from healthcore.health.engine import HealthEngine
from healthcore.health.models import Status, SystemSnapshot

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STATUS_STYLE = {
    Status.HEALTHY: "green",
    Status.DEGRADED: "yellow",
    Status.UNHEALTHY: "red",
}


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting healthcore API server", style="bold green"))
    uvicorn.run(
        "healthcore.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


async def _check_once(config_file: str) -> SystemSnapshot:
    config = load_health_config(resolve_config_path(config_file), settings)
    connections = await open_connections(config)
    try:
        engine = HealthEngine(
            config,
            db_pool=connections.db_pool,
            cache_client=connections.cache_client,
            http_client=connections.http_client,
        )
        return await engine.run_all()
    finally:
        await connections.close()


def render_snapshot(snapshot: SystemSnapshot) -> None:
    table = Table(title="Health checks")
    table.add_column("Service")
    table.add_column("Status")
    table.add_column("Time (ms)", justify="right")
    table.add_column("Error")
    for r in snapshot.checks:
        style = _STATUS_STYLE[r.status]
        table.add_row(r.service, f"[{style}]{r.status.value}[/{style}]", str(r.response_time_ms), r.error or "")
    console.print(table)

    s = snapshot.summary
    console.print(Panel(
        f"{s.healthy}/{s.total} healthy, {s.degraded} degraded, {s.unhealthy} unhealthy",
        title=f"Overall: {snapshot.status.value}",
        style=f"bold {_STATUS_STYLE[snapshot.status]}",
    ))


def run_check(config_file: str, as_json: bool = False) -> int:
    """Run one readiness pass. Returns the process exit code."""
    snapshot = asyncio.run(_check_once(config_file))
    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2, default=str))
    else:
        render_snapshot(snapshot)
    return 1 if snapshot.status == Status.UNHEALTHY else 0


def main() -> None:
    parser = argparse.ArgumentParser(description="healthcore dependency health checks")
    sub = parser.add_subparsers(dest="command")

    # Server mode
    sub.add_parser("serve", help="Start the API server")

    # One-shot mode
    check_parser = sub.add_parser("check", help="Run all checks once and exit")
    check_parser.add_argument(
        "--config", default=settings.health_config_file, help="Path to health.yaml",
    )
    check_parser.add_argument("--json", action="store_true", help="Print the snapshot as JSON")

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "check":
        sys.exit(run_check(args.config, as_json=args.json))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()

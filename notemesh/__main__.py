"""CLI entry point for notemesh."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

import httpx

from .config import load_config


LOG_LEVELS = {
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, tagged with the replica that wrote it."""

    def __init__(self, replica: str | None = None):
        super().__init__()
        self.replica = replica

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }
        if self.replica:
            log_data["replica"] = self.replica

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # default=str keeps odd message args from breaking a log line
        return json.dumps(log_data, default=str)


def setup_logging(
    verbose: bool = False,
    log_level: str | None = None,
    json_output: bool = False,
    replica: str | None = None,
) -> None:
    """Configure logging for a replica process.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
        replica: Replica name stamped on every line.
    """
    if log_level:
        level = LOG_LEVELS.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter(replica))
    else:
        prefix = f"[{replica}] " if replica else ""
        handler.setFormatter(logging.Formatter(
            fmt=f"%(asctime)s {prefix}%(name)s %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logging.basicConfig(level=level, handlers=[handler])

    # httpx logs every peer request at INFO; keep that for debug runs only
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)


async def cmd_serve(args: argparse.Namespace) -> int:
    """Run a replica server."""
    import uvicorn

    from .api import create_app

    config = load_config(args.config)
    if args.host:
        config.replica.host = args.host
    if args.port:
        config.replica.port = args.port

    peers = [name for name in config.peers.endpoints if name != config.replica.name]
    print(f"Starting notemesh replica: {config.replica.name}")
    print(f"URL: http://{config.replica.host}:{config.replica.port}")
    print(f"Peers: {', '.join(peers) if peers else '(none)'}")

    app = create_app(config)

    verbose = getattr(args, "verbose", False)
    server_config = uvicorn.Config(
        app,
        host=config.replica.host,
        port=config.replica.port,
        log_level="info" if verbose else "warning",
    )
    server = uvicorn.Server(server_config)
    await server.serve()

    return 0


def _replica_url(args: argparse.Namespace) -> str:
    if args.url:
        return args.url.rstrip("/")
    config = load_config(args.config)
    return f"http://localhost:{config.replica.port}"


async def cmd_status(args: argparse.Namespace) -> int:
    """Show identity and health of a running replica."""
    url = _replica_url(args)
    status_data = {"timestamp": datetime.now().isoformat(), "url": url}

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            health = await client.get(f"{url}/api/health")
            debug = await client.get(f"{url}/debug/replicas")
        status_data["healthy"] = health.status_code == 200
        status_data["replica"] = debug.json()
    except httpx.HTTPError as e:
        status_data["healthy"] = False
        status_data["error"] = str(e)

    if args.status_json:
        print(json.dumps(status_data, indent=2))
    else:
        print(f"Replica at {url}")
        if not status_data["healthy"]:
            print(f"  Unreachable: {status_data.get('error', 'unhealthy')}")
            return 1
        info = status_data["replica"]
        print(f"  Name: {info['replica']}")
        print(f"  Posts: {info['post_count']}")
        print(f"  Clear commands: {info['clear_count']}")
        print(f"  Peers: {', '.join(info['peers']) or '(none)'}")

    return 0 if status_data["healthy"] else 1


async def cmd_sync(args: argparse.Namespace) -> int:
    """Trigger a full sync on a running replica."""
    url = _replica_url(args)

    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(f"{url}/sync")
            response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"Sync failed: {e}", file=sys.stderr)
        return 1

    summary = response.json()
    print(summary["message"])
    for name, phases in summary["peers"].items():
        phase_text = ", ".join(f"{k}={v}" for k, v in phases.items())
        print(f"  {name}: {phase_text}")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="notemesh",
        description="Multi-replica note sharing with session-scoped consistency",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: none, environment only)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run a replica server")
    serve_parser.add_argument("--host", type=str, default=None, help="Host to bind to")
    serve_parser.add_argument("-p", "--port", type=int, default=None, help="Port to listen on")
    serve_parser.set_defaults(func=cmd_serve)

    status_parser = subparsers.add_parser("status", help="Show a replica's status")
    status_parser.add_argument("--url", type=str, default=None, help="Replica base URL")
    status_parser.add_argument(
        "--json",
        dest="status_json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    sync_parser = subparsers.add_parser("sync", help="Trigger a full sync on a replica")
    sync_parser.add_argument("--url", type=str, default=None, help="Replica base URL")
    sync_parser.set_defaults(func=cmd_sync)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    config = load_config(args.config)
    setup_logging(
        args.verbose,
        args.log_level or (None if args.verbose else config.logging.level),
        args.json or config.logging.json,
        replica=config.replica.name,
    )

    return asyncio.run(args.func(args))


if __name__ == "__main__":
    sys.exit(main())

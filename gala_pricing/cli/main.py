"""
Top-level CLI dispatcher: gala-pricing <command> [args...].

  serve   run the HTTP API under uvicorn
  prices  one fetch-and-reconcile pass, printed as JSON
  health  per-source health after one pass
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _main_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("gala_pricing.api:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _main_prices(args: argparse.Namespace) -> int:
    from gala_pricing.service import build_service

    service = build_service()
    wanted = args.assets or None
    if args.detail:
        payload = service.aggregator.comprehensive(wanted)
    else:
        payload = service.get_reconciled_prices(wanted)
    print(json.dumps(payload, indent=2, default=str))
    missing = [a for a, p in service.get_reconciled_prices(wanted).items() if p is None]
    if missing:
        print(f"No fresh price for: {', '.join(missing)}", file=sys.stderr)
    return 0


def _main_health(args: argparse.Namespace) -> int:
    from gala_pricing.service import build_service

    service = build_service()
    service.get_reconciled_prices()
    print(json.dumps(service.status(), indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = argparse.ArgumentParser(
        prog="gala-pricing",
        description="Multi-source price aggregation for GalaChain trading",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    subparsers = parser.add_subparsers(dest="command", help="command")

    serve = subparsers.add_parser("serve", help="Run the pricing API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=3000, help="Port (default: 3000)")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    prices = subparsers.add_parser("prices", help="Fetch and print reconciled prices")
    prices.add_argument("assets", nargs="*", help="Asset ids (default: whole catalog)")
    prices.add_argument("--detail", action="store_true", help="Print per-source reconciliation detail")

    subparsers.add_parser("health", help="Print per-source health")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    _configure_logging(args.log_level)

    if args.command == "serve":
        return _main_serve(args)
    if args.command == "prices":
        return _main_prices(args)
    if args.command == "health":
        return _main_health(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

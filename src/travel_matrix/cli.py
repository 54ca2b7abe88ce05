"""Command line entry point for the travel matrix pipeline."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Sequence

from .config import settings
from .errors import TravelMatrixError
from .persistence.filesystem import FileStorage
from .persistence.ledger import BudgetLedger
from .services.google.client import BudgetedBatchMatrixClient, preview_run
from .services.google.departure import DepartureMode
from .services.pipeline import build_profiles, google_output_path, load_reference_zones, run_google_pipeline, run_osrm_pipeline

logger = logging.getLogger("travel_matrix")


def _departure_mode(args: argparse.Namespace) -> DepartureMode:
    if args.morning:
        return DepartureMode.MORNING
    if args.evening:
        return DepartureMode.EVENING
    return DepartureMode.NOW


def cmd_osrm(args: argparse.Namespace) -> int:
    run_osrm_pipeline(dry_run=args.dry_run)
    return 0


def cmd_google(args: argparse.Namespace) -> int:
    storage = FileStorage()
    mode = _departure_mode(args)
    output = google_output_path(mode)

    if args.dry_run:
        zones = load_reference_zones(storage)
        preview = preview_run(len(zones), BudgetLedger(storage=storage))
        plan = preview.plan
        logger.info(f"{plan.size} communes -> {plan.total_elements} elements")
        logger.info(f"Batch size: {plan.batch_size}x{plan.batch_size}; total batches: {len(plan)} API calls")
        logger.info(f"Estimated cost: ${preview.projected_cost:.2f}; mode: {mode.description}; output: {output.name}")
        logger.info(
            f"Monthly spend so far: ${preview.spent_this_month:.2f}; projected: "
            f"${preview.projected_spend:.2f} / ${preview.monthly_limit:.2f}"
        )
        for batch in plan:
            logger.info(f"[dry-run] {batch.describe()}")
        for zone in zones:
            logger.info(f"[dry-run] {zone.name}: {zone.snapped_lat:.5f}, {zone.snapped_lng:.5f}")
        if not preview.within_budget:
            logger.error("This run would exceed the monthly budget.")
            return 1
        return 0

    if not args.confirm:
        logger.warning("Add --confirm to execute (cost safeguard). No request was sent.")
        return 0

    client = BudgetedBatchMatrixClient(ledger=BudgetLedger(storage=storage))
    zones = load_reference_zones(storage)

    cancel_event = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel_event.set())
    try:
        run_google_pipeline(client, zones, mode, storage=storage, output=output, cancel_event=cancel_event)
    finally:
        signal.signal(signal.SIGINT, previous)
        client.close()
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    derived = build_profiles(source=args.source)
    logger.info(f"{len(derived.communes)} communes x {len(derived.profiles or {})} profiles")
    return 0


def cmd_budget(args: argparse.Namespace) -> int:
    ledger = BudgetLedger()
    spent = ledger.monthly_spend()
    print(f"Spent this month: ${spent:.2f} / ${settings.monthly_budget_limit:.2f} ({len(ledger.entries())} runs recorded)")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("travel_matrix.main:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="travel-matrix", description="Commune travel time matrix pipeline.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    osrm = sub.add_parser("osrm", help="Snap centroids and compute the free OSRM matrix")
    osrm.add_argument("--dry-run", action="store_true", help="Only compute centroids; no request, no output")
    osrm.set_defaults(func=cmd_osrm)

    google = sub.add_parser("google", help="Compute the paid Google matrix in budgeted batches")
    google.add_argument("--dry-run", action="store_true", help="Print the batch plan and cost; no request")
    google.add_argument("--confirm", action="store_true", help="Required to issue paid requests")
    when = google.add_mutually_exclusive_group()
    when.add_argument("--morning", action="store_true", help="Next weekday, morning rush departure")
    when.add_argument("--evening", action="store_true", help="Next weekday, evening rush departure")
    google.set_defaults(func=cmd_google)

    profiles = sub.add_parser("profiles", help="Derive congestion profiles from the OSRM matrix")
    profiles.add_argument("--source", default=None, help="Raw matrix artifact (defaults to the OSRM output)")
    profiles.set_defaults(func=cmd_profiles)

    budget = sub.add_parser("budget", help="Show this month's Distance Matrix spend")
    budget.set_defaults(func=cmd_budget)

    serve = sub.add_parser("serve", help="Serve the matrix API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except TravelMatrixError as exc:
        logger.error(str(exc))
        return 1
    except (OSError, ValueError) as exc:
        logger.error(f"{type(exc).__name__}: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

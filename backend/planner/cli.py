"""Command-line entry points for running syncs and the month rotation by hand.

Each sub-command maps onto one service operation; the scheduled Celery tasks
run the same operations.
"""

import argparse
import json
import logging
from typing import Optional, Sequence

from planner.core.logging import configure_logging
from planner.services.rotation_service import check_and_rotate
from planner.services.sync_service import (
    refresh_stock,
    sync_current_month,
    sync_full_month,
    sync_initial,
    sync_product_catalog,
    sync_yesterday,
)
from planner.worker.runner import run_db_job, run_sync_job

logger = logging.getLogger(__name__)


def run_daily(args: argparse.Namespace):
    return run_sync_job(sync_yesterday)


def run_init(args: argparse.Namespace):
    return run_sync_job(lambda db, client: sync_initial(db, client, months=args.months))


def run_month(args: argparse.Namespace):
    return run_sync_job(lambda db, client: sync_full_month(db, client, args.year, args.month))


def run_current(args: argparse.Namespace):
    return run_sync_job(lambda db, client: sync_current_month(db, client, include_today=args.include_today))


def run_products(args: argparse.Namespace):
    return run_sync_job(sync_product_catalog)


def run_stock(args: argparse.Namespace):
    return run_sync_job(refresh_stock)


def run_rotate(args: argparse.Namespace):
    return run_db_job(lambda db: check_and_rotate(db, force=args.force))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="planner", description="Purchase planner sync tools.")
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")

    daily = subparsers.add_parser("daily", help="Sync catalog, yesterday's sales and current-month data.")
    daily.set_defaults(handler=run_daily)

    init = subparsers.add_parser("init", help="Backfill the catalog, N full months and the current month.")
    init.add_argument("months", nargs="?", type=int, default=12)
    init.set_defaults(handler=run_init)

    month = subparsers.add_parser("month", help="Recompute one month of historical sales.")
    month.add_argument("year", type=int)
    month.add_argument("month", type=int)
    month.set_defaults(handler=run_month)

    current = subparsers.add_parser("current", help="Rebuild current-month sales and stock.")
    current.add_argument("--include-today", action="store_true", help="Also count sales made today.")
    current.set_defaults(handler=run_current)

    products = subparsers.add_parser("products", help="Sync the product catalog.")
    products.set_defaults(handler=run_products)

    stock = subparsers.add_parser("stock", help="Refresh stock on hand only.")
    stock.set_defaults(handler=run_stock)

    rotate = subparsers.add_parser("rotate", help="Run the month rotation if it is due.")
    rotate.add_argument("--force", action="store_true", help="Rotate even if not due.")
    rotate.set_defaults(handler=run_rotate)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        result = args.handler(args)
    except ValueError as exc:
        parser.error(str(exc))
    except Exception:
        logger.error("Command %s failed", args.command, exc_info=True)
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
Gigmarket CLI - operator commands for the marketplace database.

Usage:
    gigmarket init-db
    gigmarket jobs list [--status S] [--poster P] [--worker W] [--limit N] [--json]
    gigmarket jobs show JOB_ID [--json]
    gigmarket jobs history JOB_ID [--json]
    gigmarket payouts pending [--json]
    gigmarket payouts retry [EARNING_ID]
"""

import argparse
import json
import logging
import sys

from gigmarket.config import MarketplaceConfig
from gigmarket.errors import MarketplaceError
from gigmarket.lifecycle import LifecycleController
from gigmarket.payments.gateway import create_gateway
from gigmarket.storage.sqlite import SQLiteStorage

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init_db(args, controller: LifecycleController):
    """Create or upgrade the schema (opening the storage does both)."""
    print(f"Database ready: {controller.storage.db_path}")


def cmd_jobs(args, controller: LifecycleController):
    """Handle jobs subcommands."""
    if args.jobs_action == "list":
        jobs = controller.list_jobs(
            status=args.status,
            poster_id=args.poster,
            worker_id=args.worker,
            limit=args.limit,
        )
        if args.json:
            _print_json([j.to_dict() for j in jobs])
            return
        if not jobs:
            print("No jobs found.")
            return
        for job in jobs:
            worker = f" worker={job.worker_id}" if job.worker_id else ""
            print(f"{job.id}  [{job.status:<15}] {job.title[:40]:<40} ${job.total_amount}{worker}")

    elif args.jobs_action == "show":
        job = controller.get_job(args.job_id)
        tasks = controller.list_tasks(job.id)
        if args.json:
            data = job.to_dict()
            data["tasks"] = [t.to_dict() for t in tasks]
            _print_json(data)
            return
        print(f"{job.title} ({job.id})")
        print(f"  Status:  {job.status}")
        print(f"  Poster:  {job.poster_id}")
        print(f"  Worker:  {job.worker_id or '-'}")
        print(f"  Payment: {job.payment_amount} + fee {job.service_fee} = {job.total_amount} ({job.payment_type})")
        if tasks:
            print("  Tasks:")
            for task in tasks:
                mark = "x" if task.is_completed else " "
                optional = " (optional)" if task.is_optional else ""
                print(f"    [{mark}] {task.position}. {task.description}{optional}")

    elif args.jobs_action == "history":
        history = controller.get_job_history(args.job_id)
        if args.json:
            _print_json([t.to_dict() for t in history])
            return
        for t in history:
            print(f"{t.created_at:%Y-%m-%d %H:%M:%S}  {t.from_status or '-':>15} -> {t.to_status:<15} by {t.actor_id}")


def cmd_payouts(args, controller: LifecycleController):
    """Handle payouts subcommands."""
    if args.payouts_action == "pending":
        pending = controller.earnings.list_pending()
        if args.json:
            _print_json([e.to_dict() for e in pending])
            return
        if not pending:
            print("No pending payouts.")
            return
        for earning in pending:
            print(f"{earning.id}  job={earning.job_id} worker={earning.worker_id} ${earning.amount}")

    elif args.payouts_action == "retry":
        if args.earning_id:
            earning = controller.retry_payout(args.earning_id)
            print(f"Paid earning {earning.id} (transaction {earning.transaction_id})")
            return
        outcomes = controller.retry_pending_payouts()
        paid = sum(1 for _, ok in outcomes if ok)
        print(f"Retried {len(outcomes)} payout(s): {paid} paid, {len(outcomes) - paid} still pending")
        if paid < len(outcomes):
            sys.exit(2)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gigmarket",
        description="Gig marketplace job lifecycle administration",
    )
    parser.add_argument("--db", help="SQLite database path (default: $GIGMARKET_DB_PATH)", default=None)
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable info logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # init-db
    subparsers.add_parser("init-db", help="Create the database schema")

    # jobs
    p_jobs = subparsers.add_parser("jobs", help="Inspect jobs")
    jobs_sub = p_jobs.add_subparsers(dest="jobs_action", required=True)

    jobs_list = jobs_sub.add_parser("list", help="List jobs")
    jobs_list.add_argument("--status", help="Filter by status")
    jobs_list.add_argument("--poster", help="Filter by poster id")
    jobs_list.add_argument("--worker", help="Filter by worker id")
    jobs_list.add_argument("--limit", "-l", type=int, default=50)
    jobs_list.add_argument("--json", "-j", action="store_true")

    jobs_show = jobs_sub.add_parser("show", help="Show a job and its tasks")
    jobs_show.add_argument("job_id")
    jobs_show.add_argument("--json", "-j", action="store_true")

    jobs_history = jobs_sub.add_parser("history", help="Show a job's status history")
    jobs_history.add_argument("job_id")
    jobs_history.add_argument("--json", "-j", action="store_true")

    # payouts
    p_payouts = subparsers.add_parser("payouts", help="Worker payouts")
    payouts_sub = p_payouts.add_subparsers(dest="payouts_action", required=True)

    payouts_pending = payouts_sub.add_parser("pending", help="List earnings awaiting transfer")
    payouts_pending.add_argument("--json", "-j", action="store_true")

    payouts_retry = payouts_sub.add_parser("retry", help="Retry pending transfers")
    payouts_retry.add_argument("earning_id", nargs="?", help="Retry one earning (default: all pending)")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("gigmarket").setLevel(logging.INFO)

    try:
        config = MarketplaceConfig.from_env(db_path=args.db)
        storage = SQLiteStorage(config.db_path)
        controller = LifecycleController(storage, create_gateway(config), config)
    except (ValueError, OSError) as e:
        logger.error(f"Failed to open marketplace database: {e}")
        sys.exit(1)

    try:
        if args.command == "init-db":
            cmd_init_db(args, controller)
        elif args.command == "jobs":
            cmd_jobs(args, controller)
        elif args.command == "payouts":
            cmd_payouts(args, controller)
    except MarketplaceError as e:
        logger.error(f"{e.code}: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()

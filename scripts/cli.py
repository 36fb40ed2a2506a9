"""Minimal CLI entry point for running the Inbox Tasker monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from inbox_tasker.config.settings import InboxTaskerSettings
from inbox_tasker.core.models import Notification
from inbox_tasker.pipeline.monitor import MonitorController
from inbox_tasker.storage.task_store import SqliteTaskStore


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def on_notify(notification: Notification) -> None:
    """Print monitor notifications to stdout (errors to stderr)."""
    stream = sys.stderr if notification.is_error else sys.stdout
    marker = "!" if notification.is_error else "*"
    print(f"[{marker}] {notification.title}: {notification.detail}", file=stream, flush=True)


def _add_monitor_args(subparser: argparse.ArgumentParser, *, with_interval: bool) -> None:
    """Add --limit (and optionally --interval) flags to a subparser."""
    subparser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Number of most recent emails checked per cycle",
    )
    if with_interval:
        subparser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between poll cycles",
        )


def _validate_monitor_args(args: argparse.Namespace) -> None:
    """Reject non-positive limit and interval values."""
    if getattr(args, "limit", None) is not None and args.limit <= 0:
        print("Error: --limit must be positive", file=sys.stderr)
        sys.exit(1)
    if getattr(args, "interval", None) is not None and args.interval <= 0:
        print("Error: --interval must be positive", file=sys.stderr)
        sys.exit(1)


def _apply_overrides(settings: InboxTaskerSettings, args: argparse.Namespace) -> InboxTaskerSettings:
    updates: dict[str, object] = {}
    if getattr(args, "limit", None) is not None:
        updates["fetch_limit"] = args.limit
    if getattr(args, "interval", None) is not None:
        updates["poll_interval_seconds"] = args.interval
    return settings.model_copy(update=updates) if updates else settings


async def _monitor(controller: MonitorController) -> None:
    await controller.start()
    await controller.wait_stopped()


async def _poll_once(controller: MonitorController) -> None:
    # start() already runs one cycle before arming the timer
    await controller.start()
    session = controller.session
    controller.stop()
    if session is not None:
        print(
            f"\nCreated {session.tasks_created} tasks, "
            f"{session.conversions_failed} failed"
        )


def _count_tasks(settings: InboxTaskerSettings) -> int:
    with SqliteTaskStore(settings.database_path) as store:
        return store.count_tasks()


async def _status(controller: MonitorController) -> dict[str, object]:
    status = await controller.gate.debug_status()
    status["ready"] = await controller.gate.is_ready()
    status["signed_in"] = await controller.gate.is_signed_in()
    return status


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Inbox Tasker - Turn new Gmail messages into tasks"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("status", help="Show mail provider and task store status")
    subparsers.add_parser("sign-in", help="Sign in to Gmail and cache the token")
    subparsers.add_parser("sign-out", help="Forget the cached Gmail token")
    subparsers.add_parser("list-processed", help="List message IDs that already have tasks")

    monitor_parser = subparsers.add_parser("monitor", help="Poll for new emails until interrupted")
    _add_monitor_args(monitor_parser, with_interval=True)

    poll_parser = subparsers.add_parser("poll-once", help="Run a single poll cycle")
    _add_monitor_args(poll_parser, with_interval=False)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command in ("monitor", "poll-once"):
        _validate_monitor_args(args)

    settings = _apply_overrides(InboxTaskerSettings(), args)
    setup_logging(settings.log_level)

    controller = MonitorController.from_settings(settings, on_notify=on_notify)

    try:
        if args.command == "status":
            status = asyncio.run(_status(controller))
            print("\nMail provider:")
            for key, value in sorted(status.items()):
                print(f"  {key}: {value}")
            print(f"\nTasks created from email: {_count_tasks(settings)}")

        elif args.command == "sign-in":
            asyncio.run(controller.gate.sign_in())
            print("\nSigned in")

        elif args.command == "sign-out":
            asyncio.run(controller.gate.sign_out())
            print("\nSigned out")

        elif args.command == "list-processed":
            ids = controller.task_store.list_processed_message_ids()
            print(f"\nFound {len(ids)} processed message IDs:\n")
            for msg_id in sorted(ids):
                print(f"  {msg_id}")

        elif args.command == "monitor":
            asyncio.run(_monitor(controller))

        elif args.command == "poll-once":
            asyncio.run(_poll_once(controller))

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        controller.close()


if __name__ == "__main__":
    main()

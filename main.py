"""
CLI entry point for Taskline.

Usage:
    python main.py serve
    python main.py stop
    python main.py status
    python main.py parse "Submit report tomorrow at 3pm #work !!"
    python main.py add "Call mom on friday"

``parse`` and ``add`` go through the resident process when one is
running and run the pipeline in-process otherwise.
"""

import argparse
import asyncio
import json
import logging
import sys

from taskline.config import get_settings
from taskline.exceptions import (
    InvalidInputError,
    ResidentError,
    ResidentNotRunningError,
    ShuttingDownError,
    StorageError,
    TasklineException,
)
from taskline.models import ParsedResult
from taskline.resident.client import ResidentClient
from taskline.resident.context import ResidentContext
from taskline.resident.server import run_resident

logger = logging.getLogger("taskline.cli")


def _print_result(result: ParsedResult, record_id=None) -> None:
    payload = result.model_dump(mode="json")
    if record_id is not None:
        payload["record_id"] = record_id
    print(json.dumps(payload, indent=2))


async def _parse_in_process(raw_text: str, store: bool):
    context = ResidentContext.from_settings(open_store=store)
    try:
        key, result = await context.orchestrator.parse_keyed(raw_text)
        record_id = None
        if store:
            if context.store is None:
                raise StorageError("No task store available")
            record_id = context.store.save(raw_text, key, result)
        return record_id, result
    finally:
        await context.aclose()


async def _parse(raw_text: str, store: bool):
    client = ResidentClient()
    try:
        if store:
            return await client.add(raw_text)
        return None, await client.parse(raw_text)
    except (ResidentNotRunningError, ShuttingDownError) as exc:
        logger.info("Running in-process", extra={"reason": str(exc)})
    return await _parse_in_process(raw_text, store)


def cmd_serve(args):
    """Run the resident process in the foreground."""
    if asyncio.run(ResidentClient().is_running()):
        print("Resident process already running")
        sys.exit(1)
    asyncio.run(run_resident())


def cmd_stop(args):
    """Ask the resident process to shut down."""
    stopped = asyncio.run(ResidentClient().stop())
    print("Shutdown requested" if stopped else "Resident process not running")


def cmd_status(args):
    """Show whether the resident process is up, with cache statistics."""
    client = ResidentClient()
    try:
        response = asyncio.run(client.health())
    except ResidentError:
        print(f"Resident process not running ({client.socket_path})")
        sys.exit(1)
    print(f"Resident process running ({client.socket_path})")
    print(json.dumps(response.stats, indent=2))


def cmd_parse(args):
    """Parse text without storing it."""
    _, result = asyncio.run(_parse(args.text, store=False))
    _print_result(result)


def cmd_add(args):
    """Parse text and store the task."""
    record_id, result = asyncio.run(_parse(args.text, store=True))
    _print_result(result, record_id)


def main():
    parser = argparse.ArgumentParser(
        description="Taskline - natural-language task capture"
    )
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Run the resident process")
    subparsers.add_parser("stop", help="Stop the resident process")
    subparsers.add_parser("status", help="Show resident process status")

    p_parse = subparsers.add_parser("parse", help="Parse text into a task")
    p_parse.add_argument("text", help="Free-form task text")

    p_add = subparsers.add_parser("add", help="Parse and store a task")
    p_add.add_argument("text", help="Free-form task text")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    settings = get_settings()
    logging.basicConfig(
        level=(args.log_level or settings.logging.level).upper(),
        format=settings.logging.format,
    )

    commands = {
        "serve": cmd_serve,
        "stop": cmd_stop,
        "status": cmd_status,
        "parse": cmd_parse,
        "add": cmd_add,
    }
    try:
        commands[args.command](args)
    except InvalidInputError as exc:
        print(f"Error: {exc}")
        sys.exit(2)
    except TasklineException as exc:
        print(f"Error: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()

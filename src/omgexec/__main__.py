"""Entry point for `python -m omgexec` / `omgexec`.

Subcommands:
    omgexec exec ACTION                Run a format or http action
    omgexec subscribe ACTION EVENT     Subscribe to an action's event
    omgexec unsubscribe ACTION EVENT   Unsubscribe from an action's event
    omgexec teardown                   Stop this directory's event container

The descriptor is read from a JSON file that has already been validated.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from omgexec.types import Microservice

_DEFAULT_DESCRIPTOR = "microservice.json"


def _pairs(values: list[str], flag: str) -> dict[str, str]:
    result: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise SystemExit(f"Error: {flag} expects KEY=VALUE, got {item!r}")
        result[key] = value
    return result


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="omgexec",
        description="Run a containerized microservice's actions and events",
    )
    parser.add_argument(
        "--descriptor",
        default=_DEFAULT_DESCRIPTOR,
        help=f"Path to the microservice descriptor JSON (default: {_DEFAULT_DESCRIPTOR})",
    )
    parser.add_argument("--image", help="Container image to run (required except for teardown)")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-a", "--arg", action="append", default=[], metavar="KEY=VALUE")
    common.add_argument("-e", "--env", action="append", default=[], metavar="KEY=VALUE")

    sub = parser.add_subparsers(dest="command", required=True)
    run = sub.add_parser("exec", parents=[common], help="Run an action")
    run.add_argument("action")
    for name in ("subscribe", "unsubscribe"):
        p = sub.add_parser(name, parents=[common], help=f"{name.capitalize()} an event")
        p.add_argument("action")
        p.add_argument("event")
    sub.add_parser("teardown", help="Stop the event container of this directory")
    return parser


async def _dispatch(args: argparse.Namespace, microservice: Microservice) -> str | None:
    from omgexec.execution import Executor

    executor = Executor(microservice, args.image or "")

    if args.command == "teardown":
        stopped = await executor.stop_event_container()
        return None if stopped else "No event container recorded for this directory"

    arguments = _pairs(args.arg, "-a")
    environment = _pairs(args.env, "-e")
    match args.command:
        case "exec":
            return await executor.run_action(args.action, arguments, environment)
        case "subscribe":
            return await executor.subscribe(args.action, args.event, arguments, environment)
        case "unsubscribe":
            return await executor.unsubscribe(args.action, args.event, arguments, environment)
    raise AssertionError(args.command)


def main() -> None:
    from omgexec.errors import ExecutionFailed, OmgExecError
    from omgexec.types import Microservice

    args = _build_parser().parse_args()
    if args.command != "teardown" and not args.image:
        print("Error: --image is required", file=sys.stderr)
        sys.exit(2)
    try:
        raw = json.loads(Path(args.descriptor).read_text())
    except (OSError, json.JSONDecodeError) as exc:
        print(f"Error: cannot read descriptor {args.descriptor}: {exc}", file=sys.stderr)
        sys.exit(1)
    try:
        output = asyncio.run(_dispatch(args, Microservice.from_dict(raw)))
    except (ExecutionFailed, OmgExecError) as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)
    if output:
        print(output.strip())


if __name__ == "__main__":
    main()

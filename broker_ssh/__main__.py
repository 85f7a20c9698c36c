"""Command-line entry point for broker_ssh.

    python -m broker_ssh validate 10.0.0.12 10.0.0.13
    python -m broker_ssh run 10.0.0.12 "df -h /data" --timeout-ms 3000
"""

import argparse
import asyncio
import logging
import sys

from broker_ssh.config import Settings
from broker_ssh.dependencies import Dependencies
from broker_ssh.errors import ExecutionError
from broker_ssh.services.template import SSHSession
from broker_ssh.utils.console import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="broker_ssh", description=__doc__.splitlines()[0])
    commands = parser.add_subparsers(dest="action", required=True)

    validate = commands.add_parser("validate", help="check that hosts accept commands")
    validate.add_argument("hosts", nargs="+", metavar="HOST")

    run = commands.add_parser("run", help="run a shell command on one host")
    run.add_argument("host", metavar="HOST")
    run.add_argument("remote_command", metavar="COMMAND")
    run.add_argument("--timeout-ms", type=int, default=None)
    return parser


async def _validate(deps: Dependencies, hosts: list[str]) -> int:
    results = await asyncio.gather(*(deps.template.validate(host) for host in hosts))
    for host, ok in zip(hosts, results):
        print(f"{host}\t{'ok' if ok else 'FAILED'}")
    return 0 if all(results) else 1


async def _run(deps: Dependencies, host: str, command: str, timeout_ms: int | None) -> int:
    async def operation(session: SSHSession):
        return await session.run_command(command, timeout_ms=timeout_ms)

    try:
        result = await deps.template.execute(host, operation)
    except ExecutionError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if not result.success:
        print(f"error: {result.cause}", file=sys.stderr)
        return 1
    if result.output:
        print(result.output)
    return 0


async def main_async(args: argparse.Namespace, settings: Settings) -> int:
    async with Dependencies.from_settings(settings) as deps:
        if args.action == "validate":
            return await _validate(deps, args.hosts)
        return await _run(deps, args.host, args.remote_command, args.timeout_ms)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_colors)
    logger.debug("Starting broker_ssh %s", args.action)
    return asyncio.run(main_async(args, settings))


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for OpsWorks Deployer."""

from __future__ import annotations

import argparse
import asyncio
import signal
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape

from .client.base import ClientFactory
from .config import TaskFile, load_task_file, resolve_target, validate_options
from .errors import (
    CancelledError,
    ConfigurationError,
    DeploymentFailedError,
    DeploymentTimeoutError,
    OrchestratorError,
)
from .orchestrator import CancellationToken
from .reporter import ConsoleReporter
from .runner import run_task
from .utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 130


@dataclass
class CLIContext:
    """Context captured from CLI arguments."""

    task_file: TaskFile
    console: Console
    verbose: bool = False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opsworks-deploy",
        description="Run an OpsWorks deployment command and wait for it to finish.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a JSON task file (default: ./opsworks.json if present).",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Show poll progress and debug logging.",
    )

    subparsers = parser.add_subparsers(dest="action", required=True)
    deploy_parser = subparsers.add_parser(
        "deploy", help="Start a deployment and monitor it until it completes"
    )
    deploy_parser.add_argument(
        "target", nargs="?", default=None,
        help="Target name from the task file",
    )
    deploy_parser.add_argument("--stack-id", help="OpsWorks stack ID")
    deploy_parser.add_argument("--app-id", help="OpsWorks app ID")
    deploy_parser.add_argument(
        "--command", dest="deploy_command",
        help='Deployment command to execute (for example "deploy" or "setup")',
    )
    deploy_parser.add_argument(
        "--arg", action="append", default=None, metavar="KEY=V1[,V2...]",
        help="Command argument, may be repeated",
    )
    deploy_parser.add_argument("--region", help="AWS region")
    deploy_parser.add_argument(
        "--interval", type=float, default=None,
        help="Seconds to wait between status checks (default: 15)",
    )
    deploy_parser.add_argument(
        "--no-abort-on-failure", action="store_true",
        help="Exit 0 even if OpsWorks reports the deployment failed",
    )
    deploy_parser.add_argument(
        "--timeout", type=float, default=None,
        help="Give up monitoring after this many seconds",
    )
    deploy_parser.add_argument(
        "--poll-retries", type=int, default=None,
        help="Retry a failed status check this many times before giving up",
    )

    subparsers.add_parser("targets", help="List targets defined in the task file")

    return parser


def parse_command_args(values: Optional[Sequence[str]]) -> Optional[Dict[str, List[str]]]:
    """Turn ``["migrate=true", "tags=a,b"]`` into ``{"migrate": ["true"], "tags": ["a", "b"]}``."""
    if not values:
        return None
    parsed: Dict[str, List[str]] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise ConfigurationError(f"Invalid --arg '{item}', expected KEY=VALUE[,VALUE...]")
        parsed.setdefault(key, []).extend(v for v in raw.split(",") if v)
    return parsed


def _overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if args.stack_id:
        overrides["stackId"] = args.stack_id
    if args.app_id:
        overrides["appId"] = args.app_id
    if args.deploy_command:
        overrides["command"] = args.deploy_command
    command_args = parse_command_args(args.arg)
    if command_args is not None:
        overrides["args"] = command_args
    if args.region:
        overrides["credentials"] = {"region": args.region}
    if args.interval is not None:
        overrides["checkDeploymentInterval"] = args.interval * 1000
    if args.no_abort_on_failure:
        overrides["abortOnFailedDeployment"] = False
    if args.timeout is not None:
        overrides["timeout"] = args.timeout * 1000
    if args.poll_retries is not None:
        overrides["pollRetries"] = args.poll_retries
    return overrides


def _build_context(args: argparse.Namespace, console: Optional[Console] = None) -> CLIContext:
    return CLIContext(
        task_file=load_task_file(args.config),
        console=console or Console(),
        verbose=args.verbose,
    )


def handle_targets_command(ctx: CLIContext) -> int:
    if not ctx.task_file.targets:
        ctx.console.print("No targets defined.")
        return EXIT_OK
    for name, data in sorted(ctx.task_file.targets.items()):
        data = data or {}
        ctx.console.print(
            f"[bold]{name}[/]  command={data.get('command', ctx.task_file.options.get('command', '-'))} "
            f"stack={data.get('stackId', ctx.task_file.options.get('stackId', '-'))}"
        )
    return EXIT_OK


async def _deploy(
    ctx: CLIContext,
    options: Dict[str, Any],
    client_factory: Optional[ClientFactory],
) -> int:
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable, Ctrl-C will interrupt immediately")

    reporter = ConsoleReporter(ctx.console, verbose=ctx.verbose)
    try:
        result = await run_task(
            options,
            client_factory=client_factory,
            reporter=reporter,
            cancel_token=token,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    if not result.succeeded:
        ctx.console.print("[yellow]Deployment did not succeed, continuing because abort on failure is off[/]")
    return EXIT_OK


def handle_deploy_command(
    ctx: CLIContext,
    args: argparse.Namespace,
    client_factory: Optional[ClientFactory] = None,
) -> int:
    options = resolve_target(ctx.task_file, args.target, _overrides_from_args(args))
    validate_options(options)
    if ctx.verbose:
        safe = {k: v for k, v in options.items() if k != "credentials"}
        logger.debug("Task config: %s", safe)
    return asyncio.run(_deploy(ctx, options, client_factory))


def run_cli(
    argv: Optional[Sequence[str]] = None,
    client_factory: Optional[ClientFactory] = None,
    console: Optional[Console] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        ctx = _build_context(args, console)
        if args.action == "targets":
            return handle_targets_command(ctx)
        return handle_deploy_command(ctx, args, client_factory)
    except ConfigurationError as exc:
        (console or Console(stderr=True)).print(f"[bold red]Configuration error:[/] {escape(str(exc))}")
        return EXIT_CONFIG
    except DeploymentTimeoutError:
        return EXIT_FAILED
    except CancelledError:
        return EXIT_CANCELLED
    except DeploymentFailedError:
        return EXIT_FAILED
    except OrchestratorError as exc:
        logger.debug("Deployment aborted: %r", exc)
        return EXIT_FAILED
    except KeyboardInterrupt:
        return EXIT_CANCELLED

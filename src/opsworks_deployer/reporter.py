"""Reporters receive progress events and present them to the user."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Optional

import humanize
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .events import Completed, DeploymentEvent, Errored, Failed, Initiated, StillRunning
from .models import DeploymentResult

logger = logging.getLogger(__name__)


class Reporter(ABC):
    """Receives structured progress/result events."""

    @abstractmethod
    def report(self, event: DeploymentEvent) -> None:
        """Handle one event. Must not raise."""
        pass


def format_duration(duration: Optional[timedelta]) -> str:
    """Render a duration the way a person would say it, e.g. '1 minute and 42 seconds'."""
    if duration is None:
        return "unknown"
    # OpsWorks timestamps have whole-second precision
    seconds = max(0, int(round(duration.total_seconds())))
    return humanize.precisedelta(timedelta(seconds=seconds))


def _format_time(value) -> str:
    return value.isoformat() if value is not None else "-"


class LoggingReporter(Reporter):
    """Writes every event to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def report(self, event: DeploymentEvent) -> None:
        if isinstance(event, Initiated):
            self.log.info(
                "Deployment %s initiated for command '%s', checking status every %s seconds",
                event.handle, event.command, event.interval_seconds,
            )
        elif isinstance(event, StillRunning):
            self.log.debug("Deployment %s still running", event.handle)
        elif isinstance(event, Completed):
            result = event.result
            self.log.info(
                "Deployment %s completed with status '%s' in %s",
                result.id, result.raw_state or result.state.value, format_duration(result.duration),
            )
        elif isinstance(event, Failed):
            self.log.error(
                "Deployment %s failed with status '%s'",
                event.handle, event.last_status.status_text,
            )
        elif isinstance(event, Errored):
            self.log.error("Deployment %s errored: %s", event.handle or "-", event.error)


class ConsoleReporter(Reporter):
    """Colourised terminal output using rich."""

    def __init__(self, console: Optional[Console] = None, verbose: bool = False) -> None:
        self.console = console or Console()
        self.verbose = verbose

    def report(self, event: DeploymentEvent) -> None:
        if isinstance(event, Initiated):
            command = f" for command [bold white]{event.command}[/]" if event.command else ""
            self.console.print(f"[green]>>[/] Deployment initiated{command} (id {event.handle})")
            self.console.print("[green]>>[/] Monitoring deployment status (this may take some time)")
            if self.verbose:
                self.console.print(
                    f"   Status will be checked every [bold yellow]{event.interval_seconds:g} seconds[/]"
                )
        elif isinstance(event, StillRunning):
            if self.verbose:
                self.console.print("[yellow]>>[/] Deployment check - deployment still running")
        elif isinstance(event, Completed):
            self.print_summary(event.result)
            self.console.print(
                f"[green]>>[/] Deployment completed in {format_duration(event.result.duration)}"
            )
        elif isinstance(event, Failed):
            self.print_summary(_result_from_failed(event))
            self.console.print(
                f"[bold red]>> Status: {event.last_status.status_text}[/] "
                "OpsWorks reported that the deployment failed."
            )
        elif isinstance(event, Errored):
            self.console.print(f"[bold red]>> Error:[/] {escape(str(event.error))}")

    def print_summary(self, result: DeploymentResult) -> None:
        status = result.raw_state or result.state.value
        colour = "green" if result.succeeded else "red"

        table = Table(title="DEPLOYMENT SUMMARY", title_style="yellow", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Deployment ID", result.id)
        table.add_row("Duration", format_duration(result.duration))
        table.add_row("Started At", _format_time(result.created_at))
        table.add_row("Completed At", _format_time(result.completed_at))
        table.add_row("Deployment Status", f"[{colour}]{status}[/]")
        self.console.print(table)


def _result_from_failed(event: Failed) -> DeploymentResult:
    return DeploymentResult.from_status(event.last_status)

"""Deployment orchestrator: initiate, poll until terminal, report."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, NoReturn, Optional

from .client.base import DeploymentClient
from .errors import (
    CancelledError,
    DeploymentFailedError,
    DeploymentTimeoutError,
    OrchestratorError,
    TransportError,
)
from .events import Completed, DeploymentEvent, Errored, Failed, Initiated, StillRunning
from .models import (
    DeploymentHandle,
    DeploymentRequest,
    DeploymentResult,
    DeploymentStatus,
    OrchestratorConfig,
)
from .reporter import LoggingReporter, Reporter

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]
TransitionCallback = Callable[["RunState", "RunState"], None]


class RunState(Enum):
    IDLE = "idle"
    INITIATING = "initiating"
    POLLING = "polling"
    REPORTING = "reporting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"


class CancellationToken:
    """Signal a caller raises to abandon monitoring of a deployment."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class _Run:
    """Mutable state of one run(), never shared between runs."""

    request: DeploymentRequest
    state: RunState = RunState.IDLE
    handle: Optional[DeploymentHandle] = None
    fetches: int = 0


class DeploymentOrchestrator:
    """
    Drives one deployment through Idle -> Initiating -> Polling -> Reporting
    and into Succeeded, Failed or Errored.

    The orchestrator keeps no per-run state on the instance, so one instance
    can serve several concurrent runs as long as its client allows it.
    """

    def __init__(
        self,
        client: DeploymentClient,
        reporter: Optional[Reporter] = None,
        config: Optional[OrchestratorConfig] = None,
        sleep: Optional[Sleeper] = None,
        on_transition: Optional[TransitionCallback] = None,
    ):
        """
        Args:
            client: Control-plane backend
            reporter: Receives progress events, defaults to logging
            config: Poll interval and failure policy
            sleep: Awaitable used to wait between polls (tests inject a fake)
            on_transition: Called with (old, new) on every state change
        """
        self.client = client
        self.reporter = reporter or LoggingReporter()
        self.config = config or OrchestratorConfig()
        self._sleep: Sleeper = sleep or asyncio.sleep
        self._on_transition = on_transition

    async def run(
        self,
        request: DeploymentRequest,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DeploymentResult:
        """
        Start the deployment and wait until it leaves the running state.

        Args:
            request: What to deploy
            cancel_token: Optional signal that abandons polling

        Returns:
            The terminal result (non-successful only when abort_on_failure is off)

        Raises:
            TransportError: start/fetch failed
            CancelledError: cancel_token was raised or the overall timeout hit
            DeploymentFailedError: terminal state was not successful and
                abort_on_failure is on
        """
        run = _Run(request=request)
        if self.config.timeout is None:
            return await self._drive(run, cancel_token)

        try:
            return await asyncio.wait_for(self._drive(run, cancel_token), self.config.timeout)
        except asyncio.TimeoutError:
            self._error(run, DeploymentTimeoutError(run.handle, self.config.timeout))

    async def _drive(
        self,
        run: _Run,
        cancel_token: Optional[CancellationToken],
    ) -> DeploymentResult:
        if cancel_token is not None and cancel_token.cancelled:
            self._error(run, CancelledError(None))

        self._transition(run, RunState.INITIATING)
        try:
            handle = await self.client.start_deployment(run.request)
        except Exception as exc:
            self._error(run, _as_transport_error(exc, "start_deployment"))

        run.handle = handle
        self._transition(run, RunState.POLLING)
        self._emit(Initiated(handle, self.config.check_interval, run.request.command))

        while True:
            try:
                status = await self.client.fetch_status(handle)
            except Exception as exc:
                self._error(run, _as_transport_error(exc, "fetch_status"))
            run.fetches += 1

            if not status.is_running:
                break

            self._emit(StillRunning(handle))
            await self._suspend(run, cancel_token)

        logger.debug("Deployment status check complete after %d fetch(es)", run.fetches)
        self._transition(run, RunState.REPORTING)
        return self._report(run, status)

    def _report(self, run: _Run, status: DeploymentStatus) -> DeploymentResult:
        result = DeploymentResult.from_status(status)

        if result.succeeded:
            self._transition(run, RunState.SUCCEEDED)
            self._emit(Completed(result))
            return result

        self._transition(run, RunState.FAILED)
        self._emit(Failed(status.id, status))
        if self.config.abort_on_failure:
            raise DeploymentFailedError(status.id, status, result)
        logger.warning(
            "Deployment %s finished with status '%s', continuing because abort on failure is off",
            status.id, status.status_text,
        )
        return result

    async def _suspend(self, run: _Run, cancel_token: Optional[CancellationToken]) -> None:
        """Wait check_interval after a running response, or until cancelled."""
        interval = self.config.check_interval
        if cancel_token is None:
            await self._sleep(interval)
            return

        if cancel_token.cancelled:
            self._error(run, CancelledError(run.handle))

        sleeper = asyncio.ensure_future(self._sleep(interval))
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()

        if cancel_token.cancelled:
            self._error(run, CancelledError(run.handle))
        # Surface failures of an injected sleeper
        sleeper.result()

    def _transition(self, run: _Run, new_state: RunState) -> None:
        old_state, run.state = run.state, new_state
        logger.debug("Run %s: %s -> %s", run.handle or "-", old_state.value, new_state.value)
        if self._on_transition is not None:
            self._on_transition(old_state, new_state)

    def _emit(self, event: DeploymentEvent) -> None:
        try:
            self.reporter.report(event)
        except Exception:
            logger.exception("Reporter failed to handle %s", type(event).__name__)

    def _error(self, run: _Run, error: OrchestratorError) -> NoReturn:
        self._transition(run, RunState.ERRORED)
        self._emit(Errored(run.handle, error))
        raise error


def _as_transport_error(exc: Exception, operation: str) -> TransportError:
    if isinstance(exc, TransportError):
        return exc
    error = TransportError(f"{operation} failed: {exc}", operation=operation)
    error.__cause__ = exc
    return error

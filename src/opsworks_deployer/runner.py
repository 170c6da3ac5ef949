"""Entry points that validate configuration and drive one deployment."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .client.base import ClientFactory, DeploymentClient
from .client.opsworks import create_opsworks_client
from .client.retry import RetryingDeploymentClient
from .config import TaskConfig
from .errors import ConfigurationError
from .events import Errored
from .models import Credentials, DeploymentRequest, DeploymentResult, OrchestratorConfig
from .orchestrator import CancellationToken, DeploymentOrchestrator, Sleeper
from .reporter import LoggingReporter, Reporter

logger = logging.getLogger(__name__)

POLL_RETRY_DELAY = 1.0  # seconds


async def run(
    request: DeploymentRequest,
    credentials: Optional[Credentials],
    config: Optional[OrchestratorConfig] = None,
    *,
    client: Optional[DeploymentClient] = None,
    client_factory: Optional[ClientFactory] = None,
    reporter: Optional[Reporter] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[Sleeper] = None,
) -> DeploymentResult:
    """
    Run one deployment to completion.

    Pass a ready ``client`` to use it as is. It is left open for the caller
    to close. Otherwise credentials are handed to ``client_factory``
    (default: the OpsWorks backend), the client it builds is closed when the
    run ends, and the orchestrator never sees the credentials.

    Raises:
        ConfigurationError: request or credentials incomplete, before any client exists
        TransportError / CancelledError / DeploymentFailedError: from the orchestrator
    """
    config = config or OrchestratorConfig()
    reporter = reporter or LoggingReporter()

    missing = []
    if credentials is None and client is None:
        missing.append("credentials")
    if request is None:
        missing.append("request")
    if missing:
        error = ConfigurationError(missing=missing)
        reporter.report(Errored(None, error))
        raise error

    owns_client = client is None
    if owns_client:
        logger.debug("Credentials present for region %s", credentials.region)
        factory = client_factory or create_opsworks_client
        client = factory(credentials)
    active: DeploymentClient = client
    if config.poll_retries:
        active = RetryingDeploymentClient(client, config.poll_retries, POLL_RETRY_DELAY)

    orchestrator = DeploymentOrchestrator(active, reporter=reporter, config=config, sleep=sleep)
    try:
        return await orchestrator.run(request, cancel_token)
    finally:
        if owns_client:
            active.close()


async def run_task(
    options: Mapping[str, Any],
    *,
    client_factory: Optional[ClientFactory] = None,
    reporter: Optional[Reporter] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[Sleeper] = None,
) -> DeploymentResult:
    """Validate merged options (see ``config.resolve_target``) and run them."""
    reporter = reporter or LoggingReporter()
    try:
        task = TaskConfig.from_options(options)
    except ConfigurationError as error:
        reporter.report(Errored(None, error))
        raise
    except ValueError as exc:
        error = ConfigurationError(str(exc))
        reporter.report(Errored(None, error))
        raise error from exc

    return await run(
        task.request,
        task.credentials,
        task.orchestrator,
        client_factory=client_factory,
        reporter=reporter,
        cancel_token=cancel_token,
        sleep=sleep,
    )

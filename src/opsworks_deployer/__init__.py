"""Run AWS OpsWorks deployment commands and wait for them to finish.

- DeploymentOrchestrator: initiate -> poll until terminal -> report
- DeploymentClient / OpsWorksClient: control-plane backends
- Reporter / ConsoleReporter / LoggingReporter: progress output
- run / run_task: validated entry points
"""

from .client import DeploymentClient, OpsWorksClient, RetryingDeploymentClient
from .config import DEFAULT_OPTIONS, TaskConfig, load_task_file, merge_options, resolve_target, validate_options
from .errors import (
    CancelledError,
    ConfigurationError,
    DeploymentFailedError,
    DeploymentTimeoutError,
    OrchestratorError,
    TransportError,
)
from .events import Completed, Errored, Failed, Initiated, StillRunning
from .models import (
    Credentials,
    DeploymentHandle,
    DeploymentRequest,
    DeploymentResult,
    DeploymentState,
    DeploymentStatus,
    OrchestratorConfig,
)
from .orchestrator import CancellationToken, DeploymentOrchestrator, RunState
from .reporter import ConsoleReporter, LoggingReporter, Reporter, format_duration
from .runner import run, run_task

__version__ = "0.1.0"

__all__ = [
    "DeploymentClient",
    "OpsWorksClient",
    "RetryingDeploymentClient",
    "DEFAULT_OPTIONS",
    "TaskConfig",
    "load_task_file",
    "merge_options",
    "resolve_target",
    "validate_options",
    "CancelledError",
    "ConfigurationError",
    "DeploymentFailedError",
    "DeploymentTimeoutError",
    "OrchestratorError",
    "TransportError",
    "Completed",
    "Errored",
    "Failed",
    "Initiated",
    "StillRunning",
    "Credentials",
    "DeploymentHandle",
    "DeploymentRequest",
    "DeploymentResult",
    "DeploymentState",
    "DeploymentStatus",
    "OrchestratorConfig",
    "CancellationToken",
    "DeploymentOrchestrator",
    "RunState",
    "ConsoleReporter",
    "LoggingReporter",
    "Reporter",
    "format_duration",
    "run",
    "run_task",
]

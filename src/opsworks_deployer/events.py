"""Progress events emitted by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .errors import OrchestratorError
from .models import DeploymentHandle, DeploymentResult, DeploymentStatus


@dataclass(frozen=True)
class Initiated:
    handle: DeploymentHandle
    interval_seconds: float
    command: str = ""


@dataclass(frozen=True)
class StillRunning:
    handle: DeploymentHandle


@dataclass(frozen=True)
class Completed:
    result: DeploymentResult


@dataclass(frozen=True)
class Failed:
    handle: DeploymentHandle
    last_status: DeploymentStatus


@dataclass(frozen=True)
class Errored:
    """A run is about to raise; handle is None when initiation never succeeded."""

    handle: Optional[DeploymentHandle]
    error: OrchestratorError


DeploymentEvent = Union[Initiated, StillRunning, Completed, Failed, Errored]

"""In-memory test doubles for the client and reporter interfaces.

``FakeDeploymentClient`` replays a scripted sequence of statuses (or
exceptions) and records every call, so tests can assert call order and
counts without touching the network::

    client = FakeDeploymentClient(
        handle="d1",
        statuses=[running("d1"), running("d1"), successful("d1", seconds=42)],
    )
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, Tuple, Union

from .client.base import DeploymentClient
from .errors import TransportError
from .events import DeploymentEvent
from .models import (
    DeploymentHandle,
    DeploymentRequest,
    DeploymentState,
    DeploymentStatus,
)
from .reporter import Reporter

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

ScriptedStatus = Union[DeploymentStatus, Exception]


def running(handle: str = "d1", created_at: datetime = T0) -> DeploymentStatus:
    return DeploymentStatus(handle, DeploymentState.RUNNING, created_at, None, "running")


def successful(handle: str = "d1", seconds: float = 0, created_at: datetime = T0) -> DeploymentStatus:
    return DeploymentStatus(
        handle, DeploymentState.SUCCESSFUL, created_at,
        created_at + timedelta(seconds=seconds), "successful",
    )


def failed(handle: str = "d1", seconds: float = 0, created_at: datetime = T0) -> DeploymentStatus:
    return DeploymentStatus(
        handle, DeploymentState.FAILED, created_at,
        created_at + timedelta(seconds=seconds), "failed",
    )


class FakeDeploymentClient(DeploymentClient):
    """Scripted DeploymentClient that records calls."""

    def __init__(
        self,
        handle: DeploymentHandle = "d1",
        statuses: Sequence[ScriptedStatus] = (),
        start_error: Optional[Exception] = None,
    ) -> None:
        self.handle = handle
        self.statuses: List[ScriptedStatus] = list(statuses)
        self.start_error = start_error
        self.calls: List[Tuple[str, object]] = []
        self.closed = False

    @property
    def start_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "start_deployment")

    @property
    def fetch_calls(self) -> int:
        return sum(1 for name, _ in self.calls if name == "fetch_status")

    async def start_deployment(self, request: DeploymentRequest) -> DeploymentHandle:
        self.calls.append(("start_deployment", request))
        if self.start_error is not None:
            raise self.start_error
        return self.handle

    async def fetch_status(self, handle: DeploymentHandle) -> DeploymentStatus:
        self.calls.append(("fetch_status", handle))
        if not self.statuses:
            raise TransportError("No scripted status left", operation="DescribeDeployments")
        item = self.statuses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class RecordingReporter(Reporter):
    """Keeps every event in order."""

    def __init__(self) -> None:
        self.events: List[DeploymentEvent] = []

    def report(self, event: DeploymentEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> List[DeploymentEvent]:
        return [event for event in self.events if isinstance(event, event_type)]

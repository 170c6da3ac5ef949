"""Abstract interface for a deployment control plane."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from ..models import Credentials, DeploymentHandle, DeploymentRequest, DeploymentStatus


class DeploymentClient(ABC):
    """Starts deployments and reports their status.

    Implementations raise ``TransportError`` for any network or API failure.
    """

    @abstractmethod
    async def start_deployment(self, request: DeploymentRequest) -> DeploymentHandle:
        """
        Start the request's command against its stack/app.

        Args:
            request: What to deploy and where

        Returns:
            Handle identifying the new deployment
        """
        pass

    @abstractmethod
    async def fetch_status(self, handle: DeploymentHandle) -> DeploymentStatus:
        """
        Fetch the current status of a deployment. Never cached.

        Args:
            handle: Value returned by start_deployment

        Returns:
            Current remote status
        """
        pass

    def close(self) -> None:
        """Release connections held by the client."""


ClientFactory = Callable[[Credentials], DeploymentClient]

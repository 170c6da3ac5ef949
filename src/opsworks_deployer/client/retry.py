"""Opt-in bounded retry around status polling."""

from __future__ import annotations

import asyncio
import logging

from ..errors import CancelledError, TransportError
from ..models import DeploymentHandle, DeploymentRequest, DeploymentStatus
from .base import DeploymentClient

logger = logging.getLogger(__name__)


class RetryingDeploymentClient(DeploymentClient):
    """Retries fetch_status on TransportError a bounded number of times.

    start_deployment is never retried: a second CreateDeployment would start a
    second deployment on the fleet.
    """

    def __init__(self, inner: DeploymentClient, retries: int, delay: float = 1.0) -> None:
        if retries < 0:
            raise ValueError("retries must not be negative")
        self.inner = inner
        self.retries = retries
        self.delay = delay

    async def start_deployment(self, request: DeploymentRequest) -> DeploymentHandle:
        return await self.inner.start_deployment(request)

    async def fetch_status(self, handle: DeploymentHandle) -> DeploymentStatus:
        attempt = 0
        while True:
            try:
                return await self.inner.fetch_status(handle)
            except CancelledError:
                raise
            except TransportError as exc:
                if attempt >= self.retries:
                    raise
                attempt += 1
                logger.warning(
                    "Status check for %s failed (%s), retry %d/%d in %ss",
                    handle, exc, attempt, self.retries, self.delay,
                )
                await asyncio.sleep(self.delay)

    def close(self) -> None:
        self.inner.close()

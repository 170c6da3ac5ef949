"""AWS OpsWorks backend built on boto3."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import TransportError
from ..models import Credentials, DeploymentHandle, DeploymentRequest, DeploymentStatus
from .base import DeploymentClient

logger = logging.getLogger(__name__)

API_VERSION = "2013-02-18"

CREATE_DEPLOYMENT = "CreateDeployment"
DESCRIBE_DEPLOYMENTS = "DescribeDeployments"


class OpsWorksClient(DeploymentClient):
    """DeploymentClient talking to the OpsWorks control plane.

    boto3 calls block, so they run in a worker thread and polling never
    stalls the event loop.
    """

    def __init__(
        self,
        credentials: Credentials,
        endpoint: Optional[str] = None,
        timeout: int = 30,
        client: Any = None,
    ):
        """
        Initialize the client.

        Args:
            credentials: Key pair and region
            endpoint: Override of the regional endpoint URL
            timeout: Connect/read timeout in seconds
            client: Pre-built boto3 OpsWorks client (tests inject a fake)
        """
        self.credentials = credentials
        self.endpoint = endpoint
        self.timeout = timeout
        self.client = client or boto3.client(
            "opsworks",
            api_version=API_VERSION,
            region_name=credentials.region,
            endpoint_url=endpoint,
            aws_access_key_id=credentials.access_key_id,
            aws_secret_access_key=credentials.secret_access_key,
            aws_session_token=credentials.session_token,
            config=Config(connect_timeout=timeout, read_timeout=timeout),
        )

    async def start_deployment(self, request: DeploymentRequest) -> DeploymentHandle:
        data = await asyncio.to_thread(
            self._call, CREATE_DEPLOYMENT, self.client.create_deployment, request.to_payload()
        )
        deployment_id = data.get("DeploymentId")
        if not deployment_id:
            raise TransportError(
                "CreateDeployment response did not contain a DeploymentId",
                operation=CREATE_DEPLOYMENT,
                details={"response": data},
            )
        return deployment_id

    async def fetch_status(self, handle: DeploymentHandle) -> DeploymentStatus:
        data = await asyncio.to_thread(
            self._call, DESCRIBE_DEPLOYMENTS, self.client.describe_deployments,
            {"DeploymentIds": [handle]},
        )
        deployments = data.get("Deployments") or []
        if not deployments:
            raise TransportError(
                f"Deployment {handle} was not found",
                operation=DESCRIBE_DEPLOYMENTS,
                details={"response": data},
            )
        try:
            return DeploymentStatus.from_api(deployments[0])
        except (KeyError, TypeError, ValueError) as exc:
            raise TransportError(
                f"Malformed deployment description: {exc}",
                operation=DESCRIBE_DEPLOYMENTS,
                details={"response": data},
            ) from exc

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "OpsWorksClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _call(self, operation: str, method, params: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("%s params: %s", operation, params)
        try:
            data = method(**params)
        except ClientError as exc:
            error = exc.response.get("Error", {})
            error_code = error.get("Code") or None
            status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            logger.debug("%s returned HTTP %s: %s", operation, status_code, error)
            raise TransportError(
                f"{operation} failed ({error_code or status_code}): {error.get('Message') or exc}",
                operation=operation,
                status_code=status_code,
                error_code=error_code,
            ) from exc
        except BotoCoreError as exc:
            logger.debug("%s request failed: %s", operation, exc)
            raise TransportError(
                f"{operation} request failed: {exc}", operation=operation
            ) from exc

        logger.debug("%s call complete. Response: %s", operation, data)
        return data


def create_opsworks_client(credentials: Credentials) -> OpsWorksClient:
    """Default ClientFactory."""
    return OpsWorksClient(credentials)

"""Deployment control-plane clients."""

from .base import ClientFactory, DeploymentClient
from .opsworks import OpsWorksClient, create_opsworks_client
from .retry import RetryingDeploymentClient

__all__ = [
    "ClientFactory",
    "DeploymentClient",
    "OpsWorksClient",
    "create_opsworks_client",
    "RetryingDeploymentClient",
]

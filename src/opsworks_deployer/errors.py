"""Errors raised by a deployment run.

Every error inherits from ``OrchestratorError`` so callers can catch the
whole family with one ``except`` clause.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from .models import DeploymentResult, DeploymentStatus


class OrchestratorError(Exception):
    """Base class for deployment run errors."""

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details: Dict[str, Any] = details or {}


class ConfigurationError(OrchestratorError):
    """Required options are missing or invalid. Raised before any network call."""

    def __init__(
        self,
        message: str = "",
        missing: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.missing: List[str] = list(missing or [])
        if not message:
            message = f"Missing required option(s): {', '.join(self.missing)}"
        super().__init__(message, details)


class TransportError(OrchestratorError):
    """A call to the control plane failed (network, HTTP or API error)."""

    def __init__(
        self,
        message: str = "",
        operation: str = "",
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message or f"{operation or 'request'} failed", details)
        self.operation = operation
        self.status_code = status_code
        self.error_code = error_code


class CancelledError(TransportError):
    """The caller abandoned the poll loop. The remote deployment keeps running."""

    def __init__(self, handle: Optional[str] = None, message: str = "") -> None:
        super().__init__(
            message or f"Monitoring of deployment {handle} was cancelled",
            operation="cancel",
        )
        self.handle = handle


class DeploymentTimeoutError(CancelledError):
    """The overall run deadline elapsed before a terminal state was seen."""

    def __init__(self, handle: Optional[str] = None, timeout: Optional[float] = None) -> None:
        super().__init__(
            handle,
            f"Deployment {handle} did not finish within {timeout} seconds",
        )
        self.timeout = timeout


class DeploymentFailedError(OrchestratorError):
    """The remote deployment finished with a non-successful status."""

    def __init__(
        self,
        handle: str,
        last_status: "DeploymentStatus",
        result: Optional["DeploymentResult"] = None,
    ) -> None:
        super().__init__(
            f"OpsWorks reported that deployment {handle} finished with status "
            f"'{last_status.status_text}'"
        )
        self.handle = handle
        self.last_status = last_status
        self.result = result

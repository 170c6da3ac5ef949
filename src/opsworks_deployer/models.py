"""Data models shared by the orchestrator, clients and reporters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# Opaque identifier returned by the control plane for one deployment
DeploymentHandle = str

DEFAULT_REGION = "us-east-1"
DEFAULT_CHECK_INTERVAL = 15.0  # seconds


class DeploymentState(str, Enum):
    """Remote deployment state as reported by OpsWorks."""

    RUNNING = "running"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DeploymentState":
        """Map a remote status string, unknown values become OTHER."""
        if not value:
            return cls.OTHER
        try:
            return cls(value.lower())
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class DeploymentRequest:
    """A named command to run against one stack/app."""

    stack_id: str
    app_id: str
    command: str
    args: Optional[Dict[str, List[str]]] = None

    def __post_init__(self) -> None:
        missing = [
            name for name in ("stack_id", "app_id", "command")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(f"DeploymentRequest requires non-empty {', '.join(missing)}")

    def to_payload(self) -> Dict[str, Any]:
        """Render the CreateDeployment request body."""
        command: Dict[str, Any] = {"Name": self.command}
        if self.args is not None:
            command["Args"] = {key: list(values) for key, values in self.args.items()}
        return {
            "StackId": self.stack_id,
            "AppId": self.app_id,
            "Command": command,
        }


@dataclass(frozen=True)
class Credentials:
    """AWS credentials handed to a client factory, opaque to the orchestrator."""

    access_key_id: str
    secret_access_key: str
    region: str = DEFAULT_REGION
    session_token: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.access_key_id or not self.secret_access_key:
            raise ValueError("Credentials require both access_key_id and secret_access_key")

    def __repr__(self) -> str:
        return (
            f"Credentials(access_key_id={self.access_key_id!r}, "
            f"secret_access_key='***', region={self.region!r})"
        )


@dataclass(frozen=True)
class OrchestratorConfig:
    """Polling behaviour of a single run."""

    check_interval: float = DEFAULT_CHECK_INTERVAL
    abort_on_failure: bool = True
    timeout: Optional[float] = None      # overall deadline in seconds, None = unbounded
    poll_retries: int = 0                # extra fetch_status attempts on transport errors

    def __post_init__(self) -> None:
        if self.check_interval < 0:
            raise ValueError("check_interval must not be negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive when set")
        if self.poll_retries < 0:
            raise ValueError("poll_retries must not be negative")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an OpsWorks timestamp (ISO 8601 string or epoch seconds).

    Values without an offset are taken as UTC, so every parsed timestamp is
    aware and durations can always be subtracted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return _as_utc(datetime.fromisoformat(text))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class DeploymentStatus:
    """Snapshot of a remote deployment, fetched fresh on every poll."""

    id: DeploymentHandle
    state: DeploymentState
    created_at: datetime
    completed_at: Optional[datetime] = None
    raw_state: str = ""

    @property
    def is_running(self) -> bool:
        return self.state is DeploymentState.RUNNING

    @property
    def status_text(self) -> str:
        return self.raw_state or self.state.value

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DeploymentStatus":
        """Build from one element of a DescribeDeployments response."""
        raw_state = str(data.get("Status") or "")
        created_at = parse_timestamp(data.get("CreatedAt"))
        if created_at is None:
            raise ValueError("Deployment description has no CreatedAt")
        return cls(
            id=data["DeploymentId"],
            state=DeploymentState.parse(raw_state),
            created_at=created_at,
            completed_at=parse_timestamp(data.get("CompletedAt")),
            raw_state=raw_state,
        )


@dataclass(frozen=True)
class DeploymentResult:
    """Terminal outcome of a run."""

    id: DeploymentHandle
    state: DeploymentState
    duration: Optional[timedelta]
    created_at: datetime
    completed_at: Optional[datetime]
    raw_state: str = field(default="", compare=False)

    @property
    def succeeded(self) -> bool:
        return self.state is DeploymentState.SUCCESSFUL

    @classmethod
    def from_status(cls, status: DeploymentStatus) -> "DeploymentResult":
        duration = None
        if status.completed_at is not None:
            duration = _as_utc(status.completed_at) - _as_utc(status.created_at)
        return cls(
            id=status.id,
            state=status.state,
            duration=duration,
            created_at=status.created_at,
            completed_at=status.completed_at,
            raw_state=status.raw_state,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "status": self.raw_state or self.state.value,
            "duration_seconds": self.duration.total_seconds() if self.duration is not None else None,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

"""Configuration loading, merging and validation for OpsWorks Deployer."""

from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .models import (
    DEFAULT_REGION,
    Credentials,
    DeploymentRequest,
    OrchestratorConfig,
)

# Load .env file if it exists
load_dotenv()

logger = logging.getLogger(__name__)

_DEFAULT_TASK_FILE = Path("opsworks.json")

# Option defaults, values are in the units a task file uses (milliseconds)
DEFAULT_OPTIONS: Dict[str, Any] = {
    "checkDeploymentInterval": 15000,
    "abortOnFailedDeployment": True,
    "credentials": {
        "region": DEFAULT_REGION,
    },
}

# Older task files spell the interval this way
_LEGACY_ALIASES = {
    "deploymentCheckInterval": "checkDeploymentInterval",
}

# Environment variables that fill credential fields left empty by the options,
# first match wins
_CREDENTIAL_ENV = {
    "accessKeyId": ("OPSWORKS_DEPLOYER_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID"),
    "secretAccessKey": ("OPSWORKS_DEPLOYER_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY"),
    "sessionToken": ("OPSWORKS_DEPLOYER_SESSION_TOKEN", "AWS_SESSION_TOKEN"),
    "region": ("OPSWORKS_DEPLOYER_REGION", "AWS_REGION", "AWS_DEFAULT_REGION"),
}


def _normalize(layer: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not layer:
        return {}
    normalized = {}
    for key, value in layer.items():
        normalized[_LEGACY_ALIASES.get(key, key)] = value
    return normalized


def merge_options(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge option layers, later layers win.

    Top-level keys are merged shallowly; the ``credentials`` mapping is merged
    key by key so a layer can override a single credential field. Inputs are
    not modified.

    Args:
        layers: Option mappings from lowest to highest priority
    """
    merged: Dict[str, Any] = {}
    credentials: Optional[Dict[str, Any]] = None

    for layer in layers:
        layer = _normalize(layer)
        for key, value in layer.items():
            if key == "credentials":
                if value is None:
                    continue
                credentials = {**(credentials or {}), **value}
            else:
                merged[key] = copy.deepcopy(value)

    if credentials is not None:
        merged["credentials"] = credentials
    return merged


def apply_environment(options: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Fill empty credential fields from the environment."""
    environ = os.environ if environ is None else environ
    env_credentials: Dict[str, str] = {}
    for option_key, names in _CREDENTIAL_ENV.items():
        for name in names:
            if environ.get(name):
                env_credentials[option_key] = environ[name]
                break

    if not env_credentials:
        return dict(options)

    existing = options.get("credentials") or {}
    filled = {k: v for k, v in existing.items() if v not in (None, "")}
    # The built-in region default yields to a region from the environment
    if "region" in env_credentials and filled.get("region", DEFAULT_REGION) == DEFAULT_REGION:
        filled.pop("region", None)
    return {**options, "credentials": {**env_credentials, **filled}}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_options(options: Mapping[str, Any]) -> None:
    """
    Check merged options before any network call.

    Raises:
        ConfigurationError: naming every missing or invalid field
    """
    missing: List[str] = []
    credentials = options.get("credentials")
    if not isinstance(credentials, Mapping):
        missing.append("credentials")
    else:
        for key in ("accessKeyId", "secretAccessKey"):
            if _is_blank(credentials.get(key)):
                missing.append(f"credentials.{key}")

    for key in ("command", "stackId", "appId"):
        if _is_blank(options.get(key)):
            missing.append(key)

    if missing:
        logger.debug("Required options not provided: %s", ", ".join(missing))
        raise ConfigurationError(missing=missing)

    interval = options.get("checkDeploymentInterval", DEFAULT_OPTIONS["checkDeploymentInterval"])
    if not isinstance(interval, (int, float)) or isinstance(interval, bool) or interval <= 0:
        raise ConfigurationError(f"checkDeploymentInterval must be a positive number of milliseconds, got {interval!r}")

    timeout = options.get("timeout")
    if timeout is not None and (
        not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0
    ):
        raise ConfigurationError(f"timeout must be a positive number of milliseconds, got {timeout!r}")

    retries = options.get("pollRetries", 0)
    if not isinstance(retries, int) or isinstance(retries, bool) or retries < 0:
        raise ConfigurationError(f"pollRetries must be a non-negative integer, got {retries!r}")

    args = options.get("args")
    if args is not None:
        if not isinstance(args, Mapping) or not all(
            isinstance(values, (list, tuple)) and all(isinstance(v, str) for v in values)
            for values in args.values()
        ):
            raise ConfigurationError("args must map each argument name to a list of strings")


@dataclass
class TaskConfig:
    """Typed view of validated options."""

    request: DeploymentRequest
    credentials: Credentials
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "TaskConfig":
        """Validate merged options and build the typed config."""
        validate_options(options)
        credentials = options["credentials"]
        args = options.get("args")
        timeout = options.get("timeout")

        return cls(
            request=DeploymentRequest(
                stack_id=options["stackId"],
                app_id=options["appId"],
                command=options["command"],
                args={key: list(values) for key, values in args.items()} if args is not None else None,
            ),
            credentials=Credentials(
                access_key_id=credentials["accessKeyId"],
                secret_access_key=credentials["secretAccessKey"],
                region=credentials.get("region") or DEFAULT_REGION,
                session_token=credentials.get("sessionToken") or None,
            ),
            orchestrator=OrchestratorConfig(
                check_interval=options.get(
                    "checkDeploymentInterval", DEFAULT_OPTIONS["checkDeploymentInterval"]
                ) / 1000,
                abort_on_failure=bool(options.get(
                    "abortOnFailedDeployment", DEFAULT_OPTIONS["abortOnFailedDeployment"]
                )),
                timeout=timeout / 1000 if timeout is not None else None,
                poll_retries=options.get("pollRetries", 0),
            ),
        )


@dataclass
class TaskFile:
    """Shared options plus named targets, as stored in a task file."""

    options: Dict[str, Any] = field(default_factory=dict)
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    path: Optional[Path] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any], path: Optional[Path] = None) -> "TaskFile":
        options = payload.get("options", {}) or {}
        targets = payload.get("targets", {}) or {}
        if not isinstance(options, dict) or not isinstance(targets, dict):
            raise ConfigurationError("Task file 'options' and 'targets' must be objects")
        # Drop comment fields starting with an underscore
        options = {k: v for k, v in options.items() if not k.startswith("_")}
        return cls(options=options, targets=targets, path=path)


def load_task_file(path: Optional[str] = None) -> TaskFile:
    """Load a task file from `path` or the default location.

    A missing default file is not an error: options can come entirely from
    the command line and environment. A missing explicit path is.
    """
    if path:
        candidate = Path(path)
        if not candidate.is_file():
            raise ConfigurationError(f"Task file not found: {candidate}")
    else:
        candidate = _DEFAULT_TASK_FILE
        if not candidate.is_file():
            return TaskFile()

    logger.debug("Loading task file %s", candidate)
    try:
        with candidate.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Task file {candidate} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Task file {candidate} must contain a JSON object")
    return TaskFile.from_dict(data, path=candidate)


def resolve_target(
    task_file: TaskFile,
    target: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Build the merged options for one target.

    Priority (low to high): defaults, task-file options, target data,
    explicit overrides. Environment credentials fill remaining gaps.
    """
    target_data: Dict[str, Any] = {}
    if target is not None:
        if target not in task_file.targets:
            known = ", ".join(sorted(task_file.targets)) or "none"
            raise ConfigurationError(f"Unknown target '{target}' (known targets: {known})")
        target_data = task_file.targets[target] or {}

    merged = merge_options(DEFAULT_OPTIONS, task_file.options, target_data, overrides)
    return apply_environment(merged, environ)

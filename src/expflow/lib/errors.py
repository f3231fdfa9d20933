# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Exception types for experiment automation.

This module is the single source of truth for the error taxonomy used by
every stage of the experiment workflow:

- ExperimentAutomationError: Base exception for all workflow errors
- ContractValidationError: Contract JSON failed schema validation
- MissingCredentialsError: Required environment variables are not set
- InvalidConfigurationError: A configured value is malformed
- SourcePatchError / TargetNotFoundError / SourceFileNotFoundError /
  UnsupportedDeclarationError / AlreadyInstrumentedError /
  RollbackNotFoundError: Source patcher failures
- GitError: A git subprocess exited non-zero
- RemoteAPIError / TransportError: SaaS API call failures
- DeploymentTimeoutError / DeploymentFailedError: Preview deployment outcomes
- PipelineAbortedError: A fatal orchestrator stage aborted the pipeline

Remote-API errors are never retried here; the caller decides.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

__all__ = [
    "AlreadyInstrumentedError",
    "ContractValidationError",
    "DeploymentFailedError",
    "DeploymentTimeoutError",
    "ExperimentAutomationError",
    "GitError",
    "InvalidConfigurationError",
    "MissingCredentialsError",
    "PipelineAbortedError",
    "RemoteAPIError",
    "RollbackNotFoundError",
    "SourceFileNotFoundError",
    "SourcePatchError",
    "TargetNotFoundError",
    "TransportError",
    "UnsupportedDeclarationError",
]


class ExperimentAutomationError(Exception):
    """Base exception for experiment automation errors."""

    pass


class ContractValidationError(ExperimentAutomationError):
    """Raised when an experiment contract violates its schema.

    Every violated constraint is reported, not just the first one.

    Attributes:
        errors: One ``"<field path>: <message>"`` entry per violation.

    Example:
        >>> raise ContractValidationError(["variants: At least 2 variants"])
        ContractValidationError: Contract validation failed:
        variants: At least 2 variants
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("Contract validation failed:\n" + "\n".join(self.errors))


class MissingCredentialsError(ExperimentAutomationError):
    """Raised when a client is constructed without its required variables.

    Attributes:
        service: Human-readable service name (e.g. ``"Statsig"``).
        missing: Names of the environment variables that are unset.
    """

    def __init__(self, service: str, missing: Sequence[str]) -> None:
        self.service = service
        self.missing = list(missing)
        super().__init__(
            f"Missing {service} configuration. Set the following environment "
            f"variable(s): {', '.join(self.missing)}"
        )


class InvalidConfigurationError(ExperimentAutomationError, ValueError):
    """Raised when a configuration variable is set but malformed.

    Attributes:
        variable: Name of the offending environment variable.
    """

    def __init__(self, variable: str, message: str) -> None:
        self.variable = variable
        super().__init__(f"Invalid {variable}: {message}")


# ---------------------------------------------------------------------------
# Source patcher
# ---------------------------------------------------------------------------


class SourcePatchError(ExperimentAutomationError):
    """Base exception for source patching failures."""

    pass


class SourceFileNotFoundError(SourcePatchError, FileNotFoundError):
    """Raised when a code change names a file that does not exist."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        super().__init__(f"Target file not found: {path}")

    def __str__(self) -> str:
        return f"Target file not found: {self.path}"


class TargetNotFoundError(SourcePatchError):
    """Raised when no declaration pattern matches the requested function.

    Attributes:
        function: Function/component name that was searched for.
        file: File that was searched.
    """

    def __init__(self, function: str, file: Path | str) -> None:
        self.function = function
        self.file = str(file)
        super().__init__(
            f"Function/component '{function}' not found in {self.file}"
        )


class UnsupportedDeclarationError(SourcePatchError):
    """Raised when a declaration was found but has no block body to patch.

    Expression-bodied arrows (``=> (<div/>)``) and single-line bodies
    (``function f() { return 1; }``) cannot take inserted statements.
    """

    def __init__(self, function: str, file: Path | str, reason: str) -> None:
        self.function = function
        self.file = str(file)
        self.reason = reason
        super().__init__(f"Cannot instrument '{function}' in {self.file}: {reason}")


class AlreadyInstrumentedError(SourcePatchError):
    """Raised when the experiment marker for a target is already present."""

    def __init__(self, function: str, file: Path | str, experiment_key: str) -> None:
        self.function = function
        self.file = str(file)
        self.experiment_key = experiment_key
        super().__init__(
            f"'{function}' in {self.file} is already instrumented for "
            f"experiment '{experiment_key}'"
        )


class RollbackNotFoundError(SourcePatchError):
    """Raised when restoring a file that has no ``.rollback`` sidecar."""

    def __init__(self, rollback_path: Path | str) -> None:
        self.rollback_path = Path(rollback_path)
        super().__init__(f"No rollback file found: {rollback_path}")


# ---------------------------------------------------------------------------
# Git
# ---------------------------------------------------------------------------


class GitError(ExperimentAutomationError):
    """Raised when a git command exits non-zero.

    Attributes:
        command: The argv that was executed.
        returncode: Process exit status.
        stderr: Captured standard error (stripped).
    """

    def __init__(self, command: Sequence[str], returncode: int, stderr: str) -> None:
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(
            f"'{' '.join(self.command)}' failed with exit code {returncode}{detail}"
        )


# ---------------------------------------------------------------------------
# Remote APIs
# ---------------------------------------------------------------------------


class RemoteAPIError(ExperimentAutomationError):
    """Raised when a SaaS API answers with a non-2xx status.

    Attributes:
        service: Which API answered (``statsig``, ``vercel``, ``github``).
        status: HTTP status code.
        body: Response body text.
    """

    def __init__(self, service: str, status: int, body: str) -> None:
        self.service = service
        self.status = status
        self.body = body
        super().__init__(f"{service} API error: {status} - {body}")


class TransportError(ExperimentAutomationError):
    """Raised when a SaaS API call fails before an HTTP response arrives."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service} request failed: {message}")


class DeploymentTimeoutError(ExperimentAutomationError):
    """Raised when a deployment does not settle within its time budget."""

    def __init__(self, deployment_id: str, timeout_ms: int) -> None:
        self.deployment_id = deployment_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Deployment timeout - deployment {deployment_id} did not complete "
            f"within {timeout_ms} ms"
        )


class DeploymentFailedError(ExperimentAutomationError):
    """Raised when a deployment ends in ERROR or CANCELED."""

    def __init__(self, deployment_id: str | None, message: str) -> None:
        self.deployment_id = deployment_id
        super().__init__(message)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class PipelineAbortedError(ExperimentAutomationError):
    """Raised when a fatal pipeline stage fails.

    Attributes:
        stage: Name of the stage that aborted.
        cause: The underlying error.
    """

    def __init__(self, stage: str, cause: Exception) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"Stage '{stage}' failed: {cause}")

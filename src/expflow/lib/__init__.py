"""Shared helpers: error taxonomy and the git working-tree wrapper."""

from __future__ import annotations

from expflow.lib.errors import (
    ContractValidationError,
    ExperimentAutomationError,
    GitError,
    MissingCredentialsError,
    RemoteAPIError,
    TransportError,
)
from expflow.lib.git import GitRepository

__all__ = [
    "ContractValidationError",
    "ExperimentAutomationError",
    "GitError",
    "GitRepository",
    "MissingCredentialsError",
    "RemoteAPIError",
    "TransportError",
]

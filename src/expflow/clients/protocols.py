# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Client interfaces the orchestrator depends on.

Real clients (Statsig, Vercel, GitHub) and the fixed/no-op implementations
in :mod:`expflow.clients.fallback` both satisfy these protocols.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from expflow.clients.models import DeploymentResult, ExperimentSummary, PullRequest
from expflow.contracts.models import ExperimentContract


class ExperimentAPI(Protocol):
    def create_experiment(self, config: dict[str, Any]) -> str: ...

    def get_experiment(self, experiment_id: str) -> dict[str, Any]: ...

    def update_experiment(self, experiment_id: str, config: dict[str, Any]) -> bool: ...

    def start_experiment(self, experiment_id: str) -> bool: ...

    def stop_experiment(self, experiment_id: str) -> bool: ...

    def list_experiments(self) -> list[ExperimentSummary]: ...

    def get_experiment_status(self, experiment_id: str) -> str: ...


class DeploymentAPI(Protocol):
    def wait_for_deployment(self, branch: str, timeout_ms: int) -> DeploymentResult: ...


class PullRequestAPI(Protocol):
    def create_experiment_pr(
        self,
        contract: ExperimentContract,
        deployment_url: str,
        reviewers: Sequence[str] = (),
    ) -> PullRequest: ...

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Fixed and no-op client implementations.

Used when a service is unconfigured (``--strategy auto``) or deliberately
offline (``--strategy fixed``):

- FixedExperimentClient: keeps experiments in memory for the process
- FixedDeploymentClient: reports every branch as ready at its guessed
  preview URL
- NullPullRequestClient: refuses every request with the missing variables
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence
from typing import Any

from expflow.clients.models import (
    Deployment,
    DeploymentResult,
    DeploymentState,
    ExperimentStatus,
    ExperimentSummary,
    PullRequest,
)
from expflow.clients.vercel import (
    DEFAULT_PREVIEW_DOMAIN_SUFFIX,
    branch_slug,
    preview_url_for_branch,
)
from expflow.contracts.models import ExperimentContract
from expflow.lib.errors import MissingCredentialsError, RemoteAPIError

logger = logging.getLogger(__name__)


class FixedExperimentClient:
    """In-memory stand-in for the Statsig console."""

    service = "statsig (fixed)"

    def __init__(self) -> None:
        self._experiments: dict[str, dict[str, Any]] = {}

    def _require(self, experiment_id: str) -> dict[str, Any]:
        try:
            return self._experiments[experiment_id]
        except KeyError:
            raise RemoteAPIError(
                self.service, 404, f"Experiment not found: {experiment_id}"
            ) from None

    def create_experiment(self, config: dict[str, Any]) -> str:
        experiment_id = str(config.get("id") or f"fixed-{len(self._experiments) + 1}")
        self._experiments[experiment_id] = {
            "status": ExperimentStatus.SETUP.value,
            **copy.deepcopy(config),
            "id": experiment_id,
        }
        logger.info("Recorded experiment %s in memory", experiment_id)
        return experiment_id

    def get_experiment(self, experiment_id: str) -> dict[str, Any]:
        return copy.deepcopy(self._require(experiment_id))

    def update_experiment(self, experiment_id: str, config: dict[str, Any]) -> bool:
        self._require(experiment_id).update(copy.deepcopy(config))
        return True

    def start_experiment(self, experiment_id: str) -> bool:
        self._require(experiment_id)["status"] = ExperimentStatus.ACTIVE.value
        return True

    def stop_experiment(self, experiment_id: str) -> bool:
        self._require(experiment_id)["status"] = ExperimentStatus.STOPPED.value
        return True

    def list_experiments(self) -> list[ExperimentSummary]:
        return [
            ExperimentSummary(
                id=experiment_id,
                name=str(config.get("name") or ""),
                status=str(config.get("status") or ""),
            )
            for experiment_id, config in self._experiments.items()
        ]

    def get_experiment_status(self, experiment_id: str) -> str:
        return str(self._require(experiment_id).get("status") or "unknown")


class FixedDeploymentClient:
    """Deployment client that never calls out; every branch is "ready"."""

    def __init__(
        self, preview_domain_suffix: str = DEFAULT_PREVIEW_DOMAIN_SUFFIX
    ) -> None:
        self.preview_domain_suffix = preview_domain_suffix

    def wait_for_deployment(self, branch: str, timeout_ms: int = 0) -> DeploymentResult:
        url = preview_url_for_branch(branch, self.preview_domain_suffix)
        deployment = Deployment(
            id=f"fixed-{branch_slug(branch)}", url=url, state=DeploymentState.READY
        )
        return DeploymentResult(success=True, deployment=deployment, url=url)


class NullPullRequestClient:
    """Pull request client used when GitHub is not configured.

    Raises:
        MissingCredentialsError: On every request, naming the unset variables.
    """

    def __init__(
        self, missing: Sequence[str] = ("GITHUB_TOKEN", "GITHUB_REPOSITORY")
    ) -> None:
        self.missing = list(missing)

    def create_experiment_pr(
        self,
        contract: ExperimentContract,
        deployment_url: str,
        reviewers: Sequence[str] = (),
    ) -> PullRequest:
        raise MissingCredentialsError("GitHub", self.missing)

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Single-step experiment operations backing the CLI subcommands.

Each operation returns plain data; rendering is left to the CLI.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from expflow.clients.models import ExperimentSummary
from expflow.clients.protocols import ExperimentAPI
from expflow.contracts.loader import ContractLoader
from expflow.contracts.models import BRANCH_PREFIX
from expflow.lib.errors import ExperimentAutomationError, GitError
from expflow.lib.git import GitRepository
from expflow.runtime.context import ExperimentContext

logger = logging.getLogger(__name__)


@dataclass
class BranchInfo:
    name: str
    commit: str
    last_commit: str


@dataclass
class VerificationReport:
    experiment_key: str
    contract_path: Path
    branch: str
    branch_exists: bool = False
    statsig_status: str | None = None
    statsig_error: str | None = None


@dataclass
class ExperimentStatusReport:
    experiment_key: str
    statsig_status: str
    branch: str
    branch_info: BranchInfo | None = None


@dataclass
class LocalListing:
    contracts: list[str] = field(default_factory=list)
    contracts_dir_exists: bool = True
    branches: list[str] = field(default_factory=list)
    branches_error: str | None = None


class ExperimentOperations:
    """verify / status / start / stop / list for one project.

    The Statsig experiment id is the experiment key.
    """

    def __init__(
        self,
        loader: ContractLoader,
        git: GitRepository,
        experiment_client_factory: Callable[[], ExperimentAPI],
    ) -> None:
        self.loader = loader
        self.git = git
        self._experiment_client_factory = experiment_client_factory

    @classmethod
    def from_context(cls, context: ExperimentContext) -> ExperimentOperations:
        return cls(context.loader, context.git, context.experiment_client)

    def _branch_for(self, experiment_key: str) -> str:
        return f"{BRANCH_PREFIX}{experiment_key}"

    def verify(self, experiment_key: str) -> VerificationReport:
        """Check that the contract, branch and Statsig experiment exist.

        Only a missing or invalid contract is fatal; a missing branch or
        remote experiment is reported on the returned object.

        Raises:
            FileNotFoundError: If the contract file does not exist.
            ContractValidationError: If the contract is malformed.
        """
        path = self.loader.contract_path(experiment_key)
        contract = self.loader.load_existing(path)
        report = VerificationReport(
            experiment_key=experiment_key,
            contract_path=path,
            branch=contract.branch_name,
        )
        report.branch_exists = self.git.branch_exists(report.branch)
        try:
            client = self._experiment_client_factory()
            report.statsig_status = client.get_experiment_status(experiment_key)
        except ExperimentAutomationError as exc:
            logger.info("Experiment %s not found in Statsig: %s", experiment_key, exc)
            report.statsig_error = str(exc)
        return report

    def status(self, experiment_key: str) -> ExperimentStatusReport:
        """Return the Statsig status and the experiment branch's head.

        Raises:
            ExperimentAutomationError: If the Statsig lookup fails.
        """
        client = self._experiment_client_factory()
        report = ExperimentStatusReport(
            experiment_key=experiment_key,
            statsig_status=client.get_experiment_status(experiment_key),
            branch=self._branch_for(experiment_key),
        )
        try:
            report.branch_info = BranchInfo(
                name=report.branch,
                commit=self.git.rev_parse(report.branch),
                last_commit=self.git.last_commit_summary(report.branch),
            )
        except GitError:
            logger.debug("Branch %s not found", report.branch)
        return report

    def start(self, experiment_key: str) -> None:
        self._experiment_client_factory().start_experiment(experiment_key)
        logger.info("Started experiment %s", experiment_key)

    def stop(self, experiment_key: str) -> None:
        self._experiment_client_factory().stop_experiment(experiment_key)
        logger.info("Stopped experiment %s", experiment_key)

    def list_local(self) -> LocalListing:
        """List contract keys and ``exp/*`` branches (local and remote)."""
        listing = LocalListing(
            contracts_dir_exists=self.loader.contracts_root.is_dir(),
        )
        listing.contracts = self.loader.discover()
        try:
            listing.branches = self.git.list_experiment_branches()
        except GitError as exc:
            listing.branches_error = str(exc)
        return listing

    def list_remote(self) -> list[ExperimentSummary]:
        return self._experiment_client_factory().list_experiments()

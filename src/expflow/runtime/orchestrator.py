# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""End-to-end experiment pipeline.

Stages run strictly in order:

    LOAD_CONTRACT -> CHECKOUT_BRANCH -> APPLY_CODE_CHANGES -> COMMIT_AND_PUSH
    -> [AWAIT_DEPLOYMENT] -> CREATE_EXPERIMENT -> CONFIGURE_TARGETING
    -> [CREATE_PR] -> [AUTO_START]

A failure in any non-optional stage raises :class:`PipelineAbortedError`
carrying the stage name and the underlying error. Deployment and pull
request failures only add warnings; the preview URL then falls back to
the guessed ``https://<branch-slug>-<suffix>`` alias.

Side effects already performed by earlier stages (branch, commits, pushed
refs, remote experiments) are not undone on abort.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from rich.console import Console

from expflow.clients.models import PullRequest
from expflow.clients.statsig import build_experiment_config, build_targeting_config
from expflow.clients.vercel import preview_url_for_branch
from expflow.config.settings import Settings
from expflow.contracts.loader import ContractLoader
from expflow.contracts.models import ExperimentContract
from expflow.lib.errors import (
    ExperimentAutomationError,
    PipelineAbortedError,
    SourcePatchError,
)
from expflow.lib.git import GitRepository
from expflow.patcher.generator import CodeGenerator
from expflow.patcher.models import CodeModificationResult
from expflow.runtime.context import ClientSet, ExperimentContext

logger = logging.getLogger(__name__)

STATSIG_CONSOLE_URL = "https://console.statsig.com/experiments"

OK = "[green]✓[/green]"
FAILED = "[red]✗[/red]"
WARN = "[yellow]⚠[/yellow]"
SKIPPED = "[dim]-[/dim]"


class PipelineStage(StrEnum):
    LOAD_CONTRACT = "load_contract"
    CHECKOUT_BRANCH = "checkout_branch"
    APPLY_CODE_CHANGES = "apply_code_changes"
    COMMIT_AND_PUSH = "commit_and_push"
    AWAIT_DEPLOYMENT = "await_deployment"
    CREATE_EXPERIMENT = "create_experiment"
    CONFIGURE_TARGETING = "configure_targeting"
    CREATE_PR = "create_pr"
    AUTO_START = "auto_start"


@dataclass
class PipelineResult:
    """Outcome of a completed pipeline run."""

    experiment_key: str
    branch: str
    experiment_id: str | None = None
    preview_url: str | None = None
    deployment_ready: bool = False
    pull_request: PullRequest | None = None
    started: bool = False
    code_results: list[CodeModificationResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def build_commit_message(contract: ExperimentContract) -> str:
    return (
        f"feat(experiment): implement {contract.experiment_key}\n"
        "\n"
        f"{contract.description or 'Experiment implementation'}\n"
        "\n"
        f"- Experiment: {contract.name}\n"
        f"- Branch: {contract.branch_name}\n"
        f"- Variants: {', '.join(contract.variants)}\n"
        f"- Files modified: {', '.join(contract.changed_files)}"
    )


class ExperimentRunner:
    """Drive one experiment from contract to live Statsig experiment.

    Args:
        settings: Resolved settings (preview suffix, PR reviewers).
        loader: Contract loader; missing contracts are bootstrapped.
        git: Git wrapper for the project root.
        generator: Source patcher.
        clients: Experiment, deployment and pull request clients.
        console: Rich console receiving the stage markers.
    """

    def __init__(
        self,
        settings: Settings,
        loader: ContractLoader,
        git: GitRepository,
        generator: CodeGenerator,
        clients: ClientSet,
        console: Console | None = None,
    ) -> None:
        self.settings = settings
        self.loader = loader
        self.git = git
        self.generator = generator
        self.clients = clients
        self.console = console or Console()

    @classmethod
    def from_context(
        cls, context: ExperimentContext, console: Console | None = None
    ) -> ExperimentRunner:
        return cls(
            context.settings,
            context.loader,
            context.git,
            context.generator,
            context.clients,
            console=console,
        )

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _mark(self, badge: str, message: str) -> None:
        self.console.print(f"  {badge} {message}")

    def _warn(self, result: PipelineResult, message: str) -> None:
        logger.warning(message)
        result.warnings.append(message)
        self._mark(WARN, message)

    @contextmanager
    def _stage(self, stage: PipelineStage) -> Iterator[None]:
        """Convert errors raised inside a fatal stage into an abort."""
        try:
            yield
        except PipelineAbortedError:
            raise
        except (ExperimentAutomationError, OSError) as exc:
            logger.error("Stage %s failed: %s", stage, exc)
            self._mark(FAILED, f"{stage}: {exc}")
            raise PipelineAbortedError(stage, exc) from exc

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(
        self,
        experiment_key: str,
        contract_path: Path | None = None,
        create_pr: bool = False,
        create_rollbacks: bool = False,
    ) -> PipelineResult:
        """Run every stage for ``experiment_key``.

        Args:
            experiment_key: Key of ``contract/<key>.json``.
            contract_path: Explicit contract file overriding the default.
            create_pr: Open a pull request after targeting is configured.
            create_rollbacks: Snapshot target files before patching and
                restore them if any code change fails.

        Raises:
            PipelineAbortedError: When a non-optional stage fails.
        """
        self.console.rule(f"Experiment workflow: {experiment_key}")

        with self._stage(PipelineStage.LOAD_CONTRACT):
            contract = self.loader.load(experiment_key, contract_path)
        self._mark(OK, f"Loaded contract for experiment: {contract.experiment_key}")

        branch = contract.branch_name
        result = PipelineResult(experiment_key=contract.experiment_key, branch=branch)

        with self._stage(PipelineStage.CHECKOUT_BRANCH):
            self._checkout_branch(contract, result)
        self._mark(OK, f"Checked out branch: {branch}")

        with self._stage(PipelineStage.APPLY_CODE_CHANGES):
            result.code_results = self._apply_code_changes(contract, create_rollbacks)
        self._mark(OK, f"Applied {len(result.code_results)} code changes")

        with self._stage(PipelineStage.COMMIT_AND_PUSH):
            self.git.add_all()
            self.git.commit(build_commit_message(contract))
            self.git.push(branch)
        self._mark(OK, f"Committed and pushed changes to branch: {branch}")

        self._await_deployment(contract, result)

        with self._stage(PipelineStage.CREATE_EXPERIMENT):
            experiment_id = self.clients.experiments.create_experiment(
                build_experiment_config(contract)
            )
        result.experiment_id = experiment_id
        self._mark(OK, f"Created experiment in Statsig: {experiment_id}")

        with self._stage(PipelineStage.CONFIGURE_TARGETING):
            self.clients.experiments.update_experiment(
                experiment_id, build_targeting_config(contract)
            )
        self._mark(OK, f"Configured targeting for experiment: {experiment_id}")

        if create_pr:
            self._create_pull_request(contract, result)
        else:
            self._mark(SKIPPED, "Skipping pull request creation")

        if contract.statsig.auto_start:
            with self._stage(PipelineStage.AUTO_START):
                self.clients.experiments.start_experiment(experiment_id)
            result.started = True
            self._mark(OK, f"Started experiment: {experiment_id}")
        else:
            self._mark(
                SKIPPED,
                "Experiment created but not started. Use "
                f"'experiment start {experiment_key}' to start it.",
            )

        self._render_summary(result)
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _checkout_branch(
        self, contract: ExperimentContract, result: PipelineResult
    ) -> None:
        branch = contract.branch_name
        if self.git.branch_exists(branch):
            self._warn(result, f"Branch {branch} already exists. Checking it out")
            self.git.checkout(branch)
            return
        source = contract.branch_config.create_from_branch
        logger.info("Creating branch %s from %s", branch, source)
        self.git.checkout(source)
        self.git.pull(source)
        self.git.create_branch(branch)

    def _apply_code_changes(
        self, contract: ExperimentContract, create_rollbacks: bool
    ) -> list[CodeModificationResult]:
        snapshots: list[str] = []
        if create_rollbacks:
            for file in contract.changed_files:
                if self.generator.resolve(file).is_file():
                    self.generator.create_rollback(file)
                    snapshots.append(file)

        results = self.generator.apply_code_changes(contract)
        failures = [r for r in results if not r.success]
        if failures:
            for file in snapshots:
                self.generator.restore_from_rollback(file)
            for failure in failures:
                for error in failure.errors:
                    self._mark(FAILED, f"{failure.file}: {error}")
            detail = "; ".join(error for r in failures for error in r.errors)
            raise SourcePatchError(f"Code changes failed: {detail}")

        for file in snapshots:
            self.generator.discard_rollback(file)
        return results

    def _await_deployment(
        self, contract: ExperimentContract, result: PipelineResult
    ) -> None:
        fallback = preview_url_for_branch(
            contract.branch_name, self.settings.preview_domain_suffix
        )
        if not contract.deployment.wait_for_deployment:
            result.preview_url = fallback
            self._mark(SKIPPED, f"Not waiting for deployment; preview URL: {fallback}")
            return

        self.console.print("  Waiting for preview deployment...")
        try:
            outcome = self.clients.deployments.wait_for_deployment(
                contract.branch_name, contract.deployment.deployment_timeout
            )
            outcome.raise_for_outcome()
        except ExperimentAutomationError as exc:
            self._warn(result, f"{PipelineStage.AWAIT_DEPLOYMENT}: {exc}")
            self._warn(result, f"Using fallback URL: {fallback}")
            result.preview_url = fallback
            return
        result.preview_url = outcome.url or fallback
        result.deployment_ready = True
        self._mark(OK, f"Deployment ready at: {result.preview_url}")

    def _create_pull_request(
        self, contract: ExperimentContract, result: PipelineResult
    ) -> None:
        try:
            pr = self.clients.pull_requests.create_experiment_pr(
                contract, result.preview_url or "", self.settings.pr_reviewers
            )
        except ExperimentAutomationError as exc:
            self._warn(result, f"Failed to create pull request: {exc}")
            return
        result.pull_request = pr
        self._mark(OK, f"Created PR #{pr.number}: {pr.html_url}")

    def _render_summary(self, result: PipelineResult) -> None:
        self.console.print()
        self.console.rule("Experiment workflow completed", style="green")
        self.console.print(f"  [bold]experiment:[/bold] {result.experiment_id}")
        self.console.print(f"  [bold]branch:[/bold]     {result.branch}")
        self.console.print(f"  [bold]preview:[/bold]    {result.preview_url}")
        if result.pull_request:
            self.console.print(
                f"  [bold]pr:[/bold]         {result.pull_request.html_url}"
            )
        if result.warnings:
            self.console.print(f"  [bold]warnings:[/bold]   {len(result.warnings)}")
        self.console.print(f"  [bold]console:[/bold]    {STATSIG_CONSOLE_URL}")
        self.console.print()

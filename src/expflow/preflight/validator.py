# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Preflight validation before an experiment is deployed or started.

Six independent checks run in order; a failure in one never stops the
others:

- contract: the contract file exists and validates
- environment: required variables are present and well formed
- code_changes: every target file exists and declares its function
- statsig_connectivity: the console API answers a list request
- branch_state: git branch/working-tree/remote sync (warnings only)
- deployment: the project's build and lint commands succeed

The validator is read-only: it never writes files, never bootstraps a
missing contract, and only runs ``git fetch`` against the remote.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path

from expflow.clients.protocols import ExperimentAPI
from expflow.contracts.loader import ContractLoader
from expflow.contracts.models import BRANCH_PREFIX, ExperimentContract
from expflow.lib.errors import (
    ContractValidationError,
    ExperimentAutomationError,
    GitError,
)
from expflow.lib.git import GitRepository
from expflow.patcher.patterns import contains_declaration
from expflow.patcher.snippet import experiment_marker
from expflow.preflight.env_validator import validate_environment

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[str]]

DEFAULT_BUILD_COMMAND = "npm run build"
DEFAULT_LINT_COMMAND = "npm run lint"
DEFAULT_BUILD_TIMEOUT_SECONDS = 60
DEFAULT_LINT_TIMEOUT_SECONDS = 30


@dataclass
class PreflightChecks:
    """Pass/fail flag per check, each computed from that check alone."""

    contract: bool = False
    environment: bool = False
    code_changes: bool = False
    statsig_connectivity: bool = False
    branch_state: bool = False
    deployment: bool = False

    def items(self) -> list[tuple[str, bool]]:
        return [(f.name, getattr(self, f.name)) for f in fields(self)]


@dataclass
class PreflightResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    checks: PreflightChecks = field(default_factory=PreflightChecks)

    @property
    def success(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ProjectCommand:
    label: str
    command: str
    timeout_seconds: int


class PreflightValidator:
    """Run every preflight check for one experiment key.

    Args:
        project_root: Storefront project root.
        loader: Contract loader (read-only use).
        experiment_client_factory: Builds the Statsig client; credential
            errors it raises are reported as connectivity failures.
        git: Git wrapper for the project root.
        environ: Environment mapping; defaults to ``os.environ``.
        runner: ``subprocess.run``-compatible callable for build/lint.
    """

    def __init__(
        self,
        project_root: Path,
        loader: ContractLoader,
        experiment_client_factory: Callable[[], ExperimentAPI],
        git: GitRepository,
        environ: Mapping[str, str] | None = None,
        runner: Runner = subprocess.run,
        build_command: str = DEFAULT_BUILD_COMMAND,
        lint_command: str = DEFAULT_LINT_COMMAND,
        build_timeout_seconds: int = DEFAULT_BUILD_TIMEOUT_SECONDS,
        lint_timeout_seconds: int = DEFAULT_LINT_TIMEOUT_SECONDS,
    ) -> None:
        self.project_root = project_root
        self.loader = loader
        self._experiment_client_factory = experiment_client_factory
        self.git = git
        self._environ = environ
        self._runner = runner
        self.commands = (
            ProjectCommand("build", build_command, build_timeout_seconds),
            ProjectCommand("lint", lint_command, lint_timeout_seconds),
        )

    def validate_experiment(self, experiment_key: str) -> PreflightResult:
        logger.info("Running preflight checks for experiment: %s", experiment_key)
        result = PreflightResult()
        contract = self._check_contract(experiment_key, result)
        self._check_environment(result)
        self._check_code_changes(contract, result)
        self._check_statsig_connectivity(result)
        branch = (
            contract.branch_name if contract else f"{BRANCH_PREFIX}{experiment_key}"
        )
        self._check_branch_state(branch, result)
        self._check_deployment_readiness(result)
        return result

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_contract(
        self, experiment_key: str, result: PreflightResult
    ) -> ExperimentContract | None:
        path = self.loader.contract_path(experiment_key)
        try:
            contract = self.loader.load_existing(path)
        except FileNotFoundError:
            result.errors.append(f"Contract file not found: {self._display(path)}")
            return None
        except ContractValidationError as exc:
            result.errors.extend(
                f"Contract validation failed: {error}" for error in exc.errors
            )
            return None
        result.checks.contract = True
        return contract

    def _check_environment(self, result: PreflightResult) -> None:
        env_result = validate_environment(self._environ, self.project_root)
        result.errors.extend(env_result.errors)
        result.warnings.extend(env_result.warnings)
        result.checks.environment = env_result.success

    def _check_code_changes(
        self, contract: ExperimentContract | None, result: PreflightResult
    ) -> None:
        if contract is None:
            result.warnings.append("Code changes not checked: contract is invalid")
            return

        errors: list[str] = []
        for change in contract.code_changes:
            path = self.project_root / change.file
            if not path.is_file():
                errors.append(f"Target file not found: {change.file}")
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                errors.append(
                    f"Code changes validation failed: {change.file}: {exc}"
                )
                continue
            if not contains_declaration(content, change.function):
                errors.append(
                    f"Function/component '{change.function}' not found in {change.file}"
                )
            elif experiment_marker(contract.experiment_key, change.function) in content:
                result.warnings.append(
                    f"{change.function} in {change.file} is already instrumented"
                )
        result.errors.extend(errors)
        result.checks.code_changes = not errors

    def _check_statsig_connectivity(self, result: PreflightResult) -> None:
        try:
            self._experiment_client_factory().list_experiments()
        except ExperimentAutomationError as exc:
            result.errors.append(f"Statsig connectivity failed: {exc}")
            return
        result.checks.statsig_connectivity = True

    def _check_branch_state(self, branch: str, result: PreflightResult) -> None:
        try:
            current = self.git.current_branch()
            if current != branch:
                result.warnings.append(
                    f"Not on experiment branch. Current: {current}, Expected: {branch}"
                )
            if self.git.has_uncommitted_changes():
                result.warnings.append("Branch has uncommitted changes")
        except GitError as exc:
            result.errors.append(f"Branch state validation failed: {exc}")
            return

        try:
            self.git.fetch()
            local = self.git.rev_parse(branch)
            remote = self.git.rev_parse(f"{self.git.remote}/{branch}")
        except GitError:
            result.warnings.append("Could not check remote branch status")
        else:
            if local != remote:
                result.warnings.append("Branch is not up to date with remote")
        result.checks.branch_state = True

    def _check_deployment_readiness(self, result: PreflightResult) -> None:
        for command in self.commands:
            error = self._run_project_command(command)
            if error:
                result.errors.append(f"Deployment readiness failed: {error}")
                return
        result.checks.deployment = True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _display(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.project_root))
        except ValueError:
            return str(path)

    def _run_project_command(self, command: ProjectCommand) -> str | None:
        logger.info("Testing %s: %s", command.label, command.command)
        try:
            completed = self._runner(  # noqa: S603
                shlex.split(command.command),
                cwd=str(self.project_root),
                capture_output=True,
                text=True,
                timeout=command.timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return (
                f"`{command.command}` timed out after {command.timeout_seconds}s"
            )
        except FileNotFoundError:
            return f"`{command.command}`: command not found"
        if completed.returncode != 0:
            output = (completed.stderr or completed.stdout or "").strip()
            tail = "\n".join(output.splitlines()[-5:])
            detail = f": {tail}" if tail else ""
            return f"`{command.command}` exited with {completed.returncode}{detail}"
        return None

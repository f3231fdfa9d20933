# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Tests for the preflight validator.

Every check runs against a scripted subprocess runner, so no git or npm is
needed. The key property under test is independence: one failing check
never hides the result of another.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from expflow.clients.fallback import FixedExperimentClient
from expflow.clients.protocols import ExperimentAPI
from expflow.contracts.loader import ContractLoader
from expflow.lib.errors import MissingCredentialsError
from expflow.lib.git import GitRepository
from expflow.preflight.validator import PreflightValidator

pytestmark = pytest.mark.unit


def make_validator(
    project: Path,
    runner: Any,
    environ: dict[str, str],
    experiment_client_factory: Any = FixedExperimentClient,
) -> PreflightValidator:
    return PreflightValidator(
        project,
        ContractLoader(project / "contract"),
        experiment_client_factory,
        GitRepository(project, runner=runner),
        environ=environ,
        runner=runner,
    )


def failing_factory() -> ExperimentAPI:
    raise MissingCredentialsError("Statsig", ["STATSIG_CONSOLE_API_KEY"])


class TestAllChecksPass:
    def test_success(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        runner.answer(
            "git", "rev-parse", "--abbrev-ref", "HEAD", stdout="exp/button_color"
        )

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert result.success
        assert all(passed for _, passed in result.checks.items())
        assert not any("Not on experiment branch" in w for w in result.warnings)

    def test_build_and_lint_commands_run_in_project(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert ["npm", "run", "build"] in runner.calls
        assert ["npm", "run", "lint"] in runner.calls


class TestContractCheck:
    def test_missing_contract_is_not_bootstrapped(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        result = make_validator(project, runner, valid_environ).validate_experiment(
            "missing"
        )

        assert not result.success
        assert "Contract file not found: contract/missing.json" in result.errors
        assert "Code changes not checked: contract is invalid" in result.warnings
        assert not (project / "contract" / "missing.json").exists()
        assert result.checks.contract is False
        assert result.checks.statsig_connectivity is True
        assert result.checks.deployment is True

    def test_invalid_contract_lists_every_error(
        self,
        project: Path,
        runner: Any,
        valid_environ: dict[str, str],
        contract_data: Any,
    ) -> None:
        data = contract_data(codeChanges=[])
        data["variants"].pop("treatment")
        (project / "contract" / "broken.json").write_text(
            json.dumps(data), encoding="utf-8"
        )

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "broken"
        )

        contract_errors = [
            e for e in result.errors if e.startswith("Contract validation failed")
        ]
        assert len(contract_errors) == 2


class TestCodeChangesCheck:
    def test_missing_target_file(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        (project / "src" / "components" / "Button.tsx").unlink()

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert "Target file not found: src/components/Button.tsx" in result.errors
        assert result.checks.code_changes is False
        assert result.checks.contract is True

    def test_missing_declaration(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        (project / "src" / "components" / "Button.tsx").write_text(
            "export const Link = () => {\n  return null;\n};\n", encoding="utf-8"
        )

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert (
            "Function/component 'Button' not found in src/components/Button.tsx"
            in result.errors
        )

    def test_undecodable_target_is_reported(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        (project / "src" / "components" / "Button.tsx").write_bytes(
            b"\xff\xfe export const Button = () => {\n"
        )

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert any(
            e.startswith(
                "Code changes validation failed: src/components/Button.tsx:"
            )
            for e in result.errors
        )
        assert result.checks.code_changes is False
        assert result.checks.statsig_connectivity is True
        assert result.checks.branch_state is True
        assert result.checks.deployment is True


class TestIndependentFailures:
    def test_environment_failure_does_not_hide_others(
        self, project: Path, runner: Any
    ) -> None:
        result = make_validator(project, runner, {}).validate_experiment(
            "button_color"
        )

        assert not result.success
        assert result.checks.environment is False
        assert result.checks.contract is True
        assert result.checks.code_changes is True

    def test_statsig_failure(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        result = make_validator(
            project, runner, valid_environ, failing_factory
        ).validate_experiment("button_color")

        assert result.checks.statsig_connectivity is False
        assert any(
            e.startswith("Statsig connectivity failed: Missing Statsig configuration")
            for e in result.errors
        )

    def test_git_failure(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        runner.answer(
            "git",
            "rev-parse",
            "--abbrev-ref",
            "HEAD",
            returncode=128,
            stderr="not a git repository",
        )

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert result.checks.branch_state is False
        assert any(
            e.startswith("Branch state validation failed") for e in result.errors
        )
        assert result.checks.deployment is True

    def test_unreachable_remote_only_warns(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        runner.answer("git", "fetch", "origin", returncode=1, stderr="offline")

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert result.success
        assert result.checks.branch_state is True
        assert "Could not check remote branch status" in result.warnings

    def test_build_failure_skips_lint(
        self, project: Path, runner: Any, valid_environ: dict[str, str]
    ) -> None:
        runner.answer("npm", "run", "build", returncode=1, stderr="line\nboom")

        result = make_validator(project, runner, valid_environ).validate_experiment(
            "button_color"
        )

        assert (
            "Deployment readiness failed: `npm run build` exited with 1: line\nboom"
            in result.errors
        )
        assert ["npm", "run", "lint"] not in runner.calls
        assert result.checks.deployment is False

# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Shared fixtures for expflow tests.

Provides:
- A valid camelCase contract document factory
- A storefront project laid out under ``tmp_path``
- Settings isolation (no real .env files, fresh settings cache)
- A scripted ``subprocess.run`` stand-in for git and build commands
"""

from __future__ import annotations

import copy
import json
import subprocess
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from expflow.config.settings import clear_settings_cache

# -------------------------------------------------------------------------
# Contract fixtures
# -------------------------------------------------------------------------

BUTTON_SOURCE = """\
'use client';

import React from 'react';

export const Button = async ({ label }: ButtonProps) => {
  return <button>{label}</button>;
};
"""

BASE_CONTRACT: dict[str, Any] = {
    "experimentKey": "button_color",
    "name": "Button color test",
    "description": "Try a green call to action",
    "hypothesis": "Green buttons convert better",
    "variants": {
        "control": {"name": "Control", "parameters": {"color": "blue"}},
        "treatment": {"name": "Treatment", "parameters": {"color": "green"}},
    },
    "codeChanges": [
        {
            "file": "src/components/Button.tsx",
            "function": "Button",
            "wrapWith": "getExperiment",
            "parameterUsage": "showGreen",
            "insertionPoint": "before",
        }
    ],
    "targetingRules": [
        {
            "name": "Branch-based targeting",
            "conditions": [
                {
                    "type": "branch",
                    "operator": "equals",
                    "targetValue": "exp/button_color",
                }
            ],
            "passPercentage": 100,
        }
    ],
    "allocation": 100,
    "primaryMetrics": [{"name": "cta_click", "type": "count"}],
    "branchConfig": {
        "branchName": "exp/button_color",
        "targetBranch": "main",
        "createFromBranch": "main",
    },
    "deployment": {"platform": "vercel", "waitForDeployment": False},
    "statsig": {"idType": "user_id", "environment": "development"},
}


@pytest.fixture
def contract_data() -> Callable[..., dict[str, Any]]:
    """Return a factory for valid contract documents with top-level overrides."""

    def _make(**overrides: Any) -> dict[str, Any]:
        data = copy.deepcopy(BASE_CONTRACT)
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A storefront project with one component and one contract."""
    component = tmp_path / "src" / "components" / "Button.tsx"
    component.parent.mkdir(parents=True)
    component.write_text(BUTTON_SOURCE, encoding="utf-8")
    contracts = tmp_path / "contract"
    contracts.mkdir()
    (contracts / "button_color.json").write_text(
        json.dumps(BASE_CONTRACT, indent=2), encoding="utf-8"
    )
    return tmp_path


# -------------------------------------------------------------------------
# Settings isolation
# -------------------------------------------------------------------------

_SETTINGS_ENV = (
    "STATSIG_CONSOLE_API_KEY",
    "NEXT_PUBLIC_STATSIG_CLIENT_KEY",
    "NEXT_PUBLIC_STATSIG_TIER",
    "VERCEL_TOKEN",
    "VERCEL_ORG_ID",
    "VERCEL_PROJECT_ID",
    "GITHUB_TOKEN",
    "GITHUB_REPOSITORY",
    "EXPERIMENT_BRANCH",
    "EXPERIMENT_PROJECT_ROOT",
    "EXPERIMENT_CONTRACTS_DIR",
    "EXPERIMENT_PATCH_LOCATOR",
    "EXPERIMENT_PR_REVIEWERS",
    "SLACK_WEBHOOK_URL",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Strip workflow variables from the environment and reset the cache."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


# -------------------------------------------------------------------------
# Subprocess fakes
# -------------------------------------------------------------------------


class ScriptedRunner:
    """``subprocess.run`` stand-in answering argv lists from a script.

    Commands without a scripted answer succeed with empty output.
    """

    def __init__(self) -> None:
        self.script: dict[tuple[str, ...], subprocess.CompletedProcess[str]] = {}
        self.calls: list[list[str]] = []

    def answer(
        self, *command: str, stdout: str = "", returncode: int = 0, stderr: str = ""
    ) -> None:
        self.script[command] = subprocess.CompletedProcess(
            list(command), returncode, stdout, stderr
        )

    def __call__(
        self, command: list[str], **kwargs: Any
    ) -> subprocess.CompletedProcess[str]:
        self.calls.append(list(command))
        scripted = self.script.get(tuple(command))
        if scripted is not None:
            return scripted
        return subprocess.CompletedProcess(list(command), 0, "", "")

    def git_calls(self) -> list[list[str]]:
        return [call[1:] for call in self.calls if call[:1] == ["git"]]


@pytest.fixture
def runner() -> ScriptedRunner:
    return ScriptedRunner()


@pytest.fixture
def valid_environ() -> dict[str, str]:
    return {
        "NEXT_PUBLIC_STATSIG_CLIENT_KEY": "client-abc",
        "STATSIG_CONSOLE_API_KEY": "console-abc",
        "NEXT_PUBLIC_STATSIG_TIER": "development",
    }

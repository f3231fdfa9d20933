# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Tests for expflow settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from expflow.config.settings import Settings, clear_settings_cache, get_settings

pytestmark = pytest.mark.unit


class TestMissingCredentials:
    def test_nothing_configured(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.missing_statsig() == ["STATSIG_CONSOLE_API_KEY"]
        assert settings.missing_vercel() == [
            "VERCEL_TOKEN",
            "VERCEL_ORG_ID",
            "VERCEL_PROJECT_ID",
        ]
        assert settings.missing_github() == ["GITHUB_TOKEN", "GITHUB_REPOSITORY"]

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATSIG_CONSOLE_API_KEY", "console-env")
        monkeypatch.setenv("VERCEL_TOKEN", "token")
        monkeypatch.setenv("GITHUB_REPOSITORY", "acme/storefront")

        settings = Settings(_env_file=None)

        assert settings.missing_statsig() == []
        assert settings.missing_vercel() == ["VERCEL_ORG_ID", "VERCEL_PROJECT_ID"]
        assert settings.missing_github() == ["GITHUB_TOKEN"]


class TestWorkflowSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.contracts_dir == "contract"
        assert settings.patch_locator == "pattern"
        assert settings.preview_domain_suffix == "dh25-demo-site.vercel.app"
        assert settings.build_command == "npm run build"
        assert settings.pr_reviewers == []

    def test_prefixed_aliases(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("EXPERIMENT_PROJECT_ROOT", str(tmp_path))
        monkeypatch.setenv("EXPERIMENT_CONTRACTS_DIR", "experiments")
        monkeypatch.setenv("EXPERIMENT_PATCH_LOCATOR", "syntax")
        monkeypatch.setenv("EXPERIMENT_PR_REVIEWERS", '["alice", "bob"]')

        settings = Settings(_env_file=None)

        assert settings.resolved_project_root() == tmp_path.resolve()
        assert settings.resolved_contracts_dir() == tmp_path.resolve() / "experiments"
        assert settings.patch_locator == "syntax"
        assert settings.pr_reviewers == ["alice", "bob"]

    def test_absolute_contracts_dir(self, tmp_path: Path) -> None:
        settings = Settings(
            _env_file=None, project_root=tmp_path, contracts_dir=str(tmp_path / "c")
        )

        assert settings.resolved_contracts_dir() == tmp_path / "c"

    def test_invalid_locator_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(_env_file=None, patch_locator="regex")


class TestSettingsCache:
    def test_cached_until_cleared(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.chdir(tmp_path)
        first = get_settings()

        assert get_settings() is first
        clear_settings_cache()
        assert get_settings() is not first

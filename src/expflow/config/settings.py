# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""expflow settings for the experiment automation workflow.

Provides configuration for every external system the workflow touches:
- Statsig Console API (experiment management)
- Vercel (preview deployments)
- GitHub (pull requests)
- Local workflow knobs (contract directory, build/lint commands, timeouts)

Required vs optional
--------------------
The Statsig console key is required for any command that talks to Statsig;
constructing that client without it fails fast with a named-variable error.
Vercel and GitHub credentials are optional: when they are missing the client
factory in ``expflow.runtime.context`` may substitute fixed/no-op clients,
depending on the selected strategy.

Recognised environment variables (case-insensitive):

    # Statsig
    STATSIG_CONSOLE_API_KEY=console-xxxx
    NEXT_PUBLIC_STATSIG_CLIENT_KEY=client-xxxx
    NEXT_PUBLIC_STATSIG_TIER=development

    # Vercel (optional)
    VERCEL_TOKEN=...
    VERCEL_ORG_ID=...
    VERCEL_PROJECT_ID=...

    # GitHub (optional)
    GITHUB_TOKEN=...
    GITHUB_REPOSITORY=owner/repo

Values are read from the process environment first, then from ``.env`` and
``.env.local`` in the working directory.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_ENV_FILES = (".env", ".env.local")


def _find_and_load_env(start: Path | None = None) -> Path | None:
    """Load the nearest ``.env.local`` / ``.env`` walking up from ``start``.

    Returns the loaded file, or None when nothing was found. Existing
    environment variables are never overridden.
    """
    from dotenv import load_dotenv

    current = (start or Path.cwd()).resolve()
    for _ in range(10):
        for name in reversed(_ENV_FILES):
            env_file = current / name
            if env_file.exists():
                load_dotenv(env_file, override=False)
                logger.debug("Loaded environment from %s", env_file)
                return env_file
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


class Settings(BaseSettings):
    """Settings for the experiment CLI and its API clients."""

    # =========================================================================
    # STATSIG
    # =========================================================================
    statsig_console_api_key: str = Field(
        default="",
        description="Statsig Console API key (starts with 'console-').",
    )
    next_public_statsig_client_key: str = Field(
        default="",
        description="Client SDK key used by the storefront (starts with 'client-').",
    )
    next_public_statsig_tier: str = Field(
        default="",
        description="Statsig environment tier: development, staging or production.",
    )
    statsig_api_base_url: str = Field(
        default="https://statsigapi.net/console/v1",
        description="Statsig Console API base URL.",
    )

    # =========================================================================
    # VERCEL
    # =========================================================================
    vercel_token: str = Field(default="", description="Vercel API token.")
    vercel_org_id: str = Field(default="", description="Vercel team/org id.")
    vercel_project_id: str = Field(default="", description="Vercel project id.")
    vercel_api_base_url: str = Field(
        default="https://api.vercel.com",
        description="Vercel REST API base URL.",
    )
    vercel_poll_interval_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Fixed interval between deployment status polls.",
    )

    # =========================================================================
    # GITHUB
    # =========================================================================
    github_token: str = Field(default="", description="GitHub token with repo scope.")
    github_repository: str = Field(
        default="",
        description="Repository in 'owner/repo' form.",
    )
    github_api_base_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL.",
    )
    pr_reviewers: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("experiment_pr_reviewers", "pr_reviewers"),
        description="Reviewers requested on experiment PRs (JSON list).",
    )

    # =========================================================================
    # WORKFLOW
    # =========================================================================
    experiment_branch: str = Field(
        default="",
        description="Branch the storefront reads to decide which experiment is live.",
    )
    contracts_dir: str = Field(
        default="contract",
        validation_alias=AliasChoices("experiment_contracts_dir", "contracts_dir"),
        description="Directory holding <key>.json contracts, relative to the root.",
    )
    project_root: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("experiment_project_root", "project_root"),
        description="Project root; defaults to the current working directory.",
    )
    preview_domain_suffix: str = Field(
        default="dh25-demo-site.vercel.app",
        validation_alias=AliasChoices(
            "experiment_preview_domain_suffix", "preview_domain_suffix"
        ),
        description="Suffix of guessed preview URLs: https://<branch-slug>-<suffix>.",
    )
    build_command: str = Field(
        default="npm run build",
        validation_alias=AliasChoices("experiment_build_command", "build_command"),
    )
    lint_command: str = Field(
        default="npm run lint",
        validation_alias=AliasChoices("experiment_lint_command", "lint_command"),
    )
    build_timeout_seconds: int = Field(
        default=60,
        ge=1,
        validation_alias=AliasChoices(
            "experiment_build_timeout_seconds", "build_timeout_seconds"
        ),
    )
    lint_timeout_seconds: int = Field(
        default=30,
        ge=1,
        validation_alias=AliasChoices(
            "experiment_lint_timeout_seconds", "lint_timeout_seconds"
        ),
    )
    patch_locator: Literal["pattern", "syntax"] = Field(
        default="pattern",
        validation_alias=AliasChoices("experiment_patch_locator", "patch_locator"),
        description=(
            "How the patcher finds target declarations: 'pattern' (ordered "
            "declaration patterns) or 'syntax' (tree-sitter TSX grammar)."
        ),
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every SaaS API request.",
    )

    # =========================================================================
    # PYDANTIC SETTINGS CONFIG
    # =========================================================================
    model_config = SettingsConfigDict(
        env_file=_ENV_FILES,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # =========================================================================
    # HELPER METHODS
    # =========================================================================
    def resolved_project_root(self) -> Path:
        return (self.project_root or Path.cwd()).resolve()

    def resolved_contracts_dir(self) -> Path:
        contracts = Path(self.contracts_dir)
        if contracts.is_absolute():
            return contracts
        return self.resolved_project_root() / contracts

    def missing_statsig(self) -> list[str]:
        """Return the unset variables required by the Statsig console client."""
        return [] if self.statsig_console_api_key else ["STATSIG_CONSOLE_API_KEY"]

    def missing_vercel(self) -> list[str]:
        """Return the unset variables required by the Vercel client."""
        required = {
            "VERCEL_TOKEN": self.vercel_token,
            "VERCEL_ORG_ID": self.vercel_org_id,
            "VERCEL_PROJECT_ID": self.vercel_project_id,
        }
        return [name for name, value in required.items() if not value]

    def missing_github(self) -> list[str]:
        """Return the unset variables required by the GitHub client."""
        required = {
            "GITHUB_TOKEN": self.github_token,
            "GITHUB_REPOSITORY": self.github_repository,
        }
        return [name for name, value in required.items() if not value]

    def log_disabled_integrations(self) -> None:
        """Log which optional integrations are unconfigured."""
        if self.missing_vercel():
            logger.info(
                "Vercel integration not configured (%s). Deployments will use "
                "guessed preview URLs.",
                ", ".join(self.missing_vercel()),
            )
        if self.missing_github():
            logger.info(
                "GitHub integration not configured (%s). Pull requests are disabled.",
                ", ".join(self.missing_github()),
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the cached settings instance.

    The nearest ``.env.local`` / ``.env`` is loaded into the process
    environment on first call.

    Note:
        For test isolation, call `clear_settings_cache()` before each test
        that needs fresh settings.
    """
    _find_and_load_env()
    instance = Settings()
    instance.log_disabled_integrations()
    return instance


def clear_settings_cache() -> None:
    """Clear the settings cache for test isolation."""
    get_settings.cache_clear()

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Wiring of settings, git, patcher and SaaS clients for one CLI run.

Client selection is driven by :class:`ClientStrategy`:

- REAL: every client is built from settings; missing credentials raise
  ``MissingCredentialsError`` naming exactly the unset variables
- FIXED: no network access at all (in-memory experiments, guessed
  preview URLs, pull requests refused)
- AUTO: Statsig is required; Vercel and GitHub fall back to the fixed
  clients when they are not configured
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from functools import cached_property
from pathlib import Path

import httpx

from expflow.clients.base import BaseAPIClient
from expflow.clients.fallback import (
    FixedDeploymentClient,
    FixedExperimentClient,
    NullPullRequestClient,
)
from expflow.clients.github import GitHubClient
from expflow.clients.protocols import DeploymentAPI, ExperimentAPI, PullRequestAPI
from expflow.clients.statsig import StatsigConsoleClient
from expflow.clients.vercel import VercelClient
from expflow.config.settings import Settings, get_settings
from expflow.contracts.loader import ContractLoader
from expflow.lib.git import GitRepository
from expflow.patcher.fast_generator import FastCodeGenerator
from expflow.patcher.generator import CodeGenerator
from expflow.patcher.locators import make_locator
from expflow.preflight.validator import PreflightValidator

logger = logging.getLogger(__name__)


class ClientStrategy(StrEnum):
    AUTO = "auto"
    REAL = "real"
    FIXED = "fixed"


@dataclass(frozen=True)
class ClientSet:
    experiments: ExperimentAPI
    deployments: DeploymentAPI
    pull_requests: PullRequestAPI


def build_experiment_client(
    settings: Settings,
    strategy: ClientStrategy = ClientStrategy.AUTO,
    transport: httpx.BaseTransport | None = None,
) -> ExperimentAPI:
    if strategy is ClientStrategy.FIXED:
        return FixedExperimentClient()
    return StatsigConsoleClient.from_settings(settings, transport=transport)


def build_client_set(
    settings: Settings,
    strategy: ClientStrategy = ClientStrategy.AUTO,
    transport: httpx.BaseTransport | None = None,
    experiments: ExperimentAPI | None = None,
) -> ClientSet:
    """Build the experiment, deployment and pull request clients.

    Args:
        settings: Resolved settings.
        strategy: How unconfigured services are handled.
        transport: Optional httpx transport shared by the real clients.
        experiments: An already built experiment client to reuse.

    Raises:
        MissingCredentialsError: Under REAL for any unconfigured service,
            and under AUTO when Statsig is unconfigured.
    """
    if experiments is None:
        experiments = build_experiment_client(settings, strategy, transport)
    if strategy is ClientStrategy.FIXED:
        return ClientSet(
            experiments=experiments,
            deployments=FixedDeploymentClient(settings.preview_domain_suffix),
            pull_requests=NullPullRequestClient(),
        )

    deployments: DeploymentAPI
    missing_vercel = settings.missing_vercel()
    if strategy is ClientStrategy.AUTO and missing_vercel:
        logger.warning(
            "Vercel not configured (%s); using guessed preview URLs",
            ", ".join(missing_vercel),
        )
        deployments = FixedDeploymentClient(settings.preview_domain_suffix)
    else:
        deployments = VercelClient.from_settings(settings, transport=transport)

    pull_requests: PullRequestAPI
    missing_github = settings.missing_github()
    if strategy is ClientStrategy.AUTO and missing_github:
        logger.warning(
            "GitHub not configured (%s); pull requests are disabled",
            ", ".join(missing_github),
        )
        pull_requests = NullPullRequestClient(missing_github)
    else:
        pull_requests = GitHubClient.from_settings(settings, transport=transport)

    return ClientSet(experiments, deployments, pull_requests)


class ExperimentContext:
    """Everything a command needs, built lazily from one settings object.

    Clients are only constructed on first use so that commands that never
    touch a service (``list``) do not require its credentials.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        strategy: ClientStrategy = ClientStrategy.AUTO,
        transport: httpx.BaseTransport | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.strategy = strategy
        self._transport = transport
        self._environ = environ
        self._experiments: ExperimentAPI | None = None

    @cached_property
    def project_root(self) -> Path:
        return self.settings.resolved_project_root()

    @cached_property
    def loader(self) -> ContractLoader:
        return ContractLoader(self.settings.resolved_contracts_dir())

    @cached_property
    def git(self) -> GitRepository:
        return GitRepository(self.project_root)

    @cached_property
    def generator(self) -> CodeGenerator:
        locator = make_locator(self.settings.patch_locator)
        return FastCodeGenerator(self.project_root, locator=locator)

    @cached_property
    def clients(self) -> ClientSet:
        return build_client_set(
            self.settings, self.strategy, self._transport, self._experiments
        )

    def experiment_client(self) -> ExperimentAPI:
        """Return the experiment client without building the other clients."""
        if "clients" in self.__dict__:
            return self.clients.experiments
        if self._experiments is None:
            self._experiments = build_experiment_client(
                self.settings, self.strategy, self._transport
            )
        return self._experiments

    def close(self) -> None:
        """Close the HTTP sessions of every client built so far."""
        built: list[object] = [self._experiments]
        if "clients" in self.__dict__:
            clients = self.clients
            built += [clients.experiments, clients.deployments, clients.pull_requests]
        for client in built:
            if isinstance(client, BaseAPIClient):
                client.close()

    def preflight_validator(self) -> PreflightValidator:
        return PreflightValidator(
            self.project_root,
            self.loader,
            self.experiment_client,
            self.git,
            environ=self._environ,
            build_command=self.settings.build_command,
            lint_command=self.settings.lint_command,
            build_timeout_seconds=self.settings.build_timeout_seconds,
            lint_timeout_seconds=self.settings.lint_timeout_seconds,
        )

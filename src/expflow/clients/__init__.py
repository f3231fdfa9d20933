# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""SaaS API clients: Statsig console, Vercel deployments, GitHub PRs."""

from __future__ import annotations

from expflow.clients.fallback import (
    FixedDeploymentClient,
    FixedExperimentClient,
    NullPullRequestClient,
)
from expflow.clients.github import GitHubClient
from expflow.clients.models import (
    Deployment,
    DeploymentResult,
    DeploymentState,
    ExperimentStatus,
    ExperimentSummary,
    PullRequest,
    PullRequestConfig,
    PullRequestReview,
    PullRequestStatus,
)
from expflow.clients.protocols import DeploymentAPI, ExperimentAPI, PullRequestAPI
from expflow.clients.statsig import (
    StatsigConsoleClient,
    build_experiment_config,
    build_targeting_config,
)
from expflow.clients.vercel import VercelClient, preview_url_for_branch

__all__ = [
    "Deployment",
    "DeploymentAPI",
    "DeploymentResult",
    "DeploymentState",
    "ExperimentAPI",
    "ExperimentStatus",
    "ExperimentSummary",
    "FixedDeploymentClient",
    "FixedExperimentClient",
    "GitHubClient",
    "NullPullRequestClient",
    "PullRequest",
    "PullRequestAPI",
    "PullRequestConfig",
    "PullRequestReview",
    "PullRequestStatus",
    "StatsigConsoleClient",
    "VercelClient",
    "build_experiment_config",
    "build_targeting_config",
    "preview_url_for_branch",
]

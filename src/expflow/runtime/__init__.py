# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Experiment pipeline, client wiring and single-step operations."""

from __future__ import annotations

from expflow.runtime.context import (
    ClientSet,
    ClientStrategy,
    ExperimentContext,
    build_client_set,
    build_experiment_client,
)
from expflow.runtime.operations import (
    BranchInfo,
    ExperimentOperations,
    ExperimentStatusReport,
    LocalListing,
    VerificationReport,
)
from expflow.runtime.orchestrator import (
    ExperimentRunner,
    PipelineResult,
    PipelineStage,
    build_commit_message,
)

__all__ = [
    "BranchInfo",
    "ClientSet",
    "ClientStrategy",
    "ExperimentContext",
    "ExperimentOperations",
    "ExperimentRunner",
    "ExperimentStatusReport",
    "LocalListing",
    "PipelineResult",
    "PipelineStage",
    "VerificationReport",
    "build_client_set",
    "build_commit_message",
    "build_experiment_client",
]

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Experiment contract schema and loader."""

from __future__ import annotations

from expflow.contracts.loader import ContractLoader
from expflow.contracts.models import (
    BranchConfig,
    CodeChange,
    ContractMetadata,
    DeploymentConfig,
    ExperimentContract,
    InsertionPoint,
    Metric,
    StatsigConfig,
    TargetingCondition,
    TargetingRule,
    Variant,
    WrapStrategy,
    create_default_contract,
    validate_contract,
)

__all__ = [
    "BranchConfig",
    "CodeChange",
    "ContractLoader",
    "ContractMetadata",
    "DeploymentConfig",
    "ExperimentContract",
    "InsertionPoint",
    "Metric",
    "StatsigConfig",
    "TargetingCondition",
    "TargetingRule",
    "Variant",
    "WrapStrategy",
    "create_default_contract",
    "validate_contract",
]

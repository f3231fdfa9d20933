# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Preflight validation: environment, contract, code, connectivity, build."""

from __future__ import annotations

from expflow.preflight.env_validator import EnvValidationResult, validate_environment
from expflow.preflight.validator import (
    PreflightChecks,
    PreflightResult,
    PreflightValidator,
)

__all__ = [
    "EnvValidationResult",
    "PreflightChecks",
    "PreflightResult",
    "PreflightValidator",
    "validate_environment",
]

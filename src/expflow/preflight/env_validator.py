# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Environment variable validation for experiment automation.

Required variables must be present, must not be placeholders (values
containing ``***``), and must be well formed. Optional variables only
produce warnings.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

REQUIRED_VARS = (
    "NEXT_PUBLIC_STATSIG_CLIENT_KEY",
    "STATSIG_CONSOLE_API_KEY",
    "NEXT_PUBLIC_STATSIG_TIER",
)

OPTIONAL_VARS = (
    "EXPERIMENT_BRANCH",
    "VERCEL_TOKEN",
    "VERCEL_ORG_ID",
    "VERCEL_PROJECT_ID",
    "GITHUB_TOKEN",
    "GITHUB_REPOSITORY",
    "SLACK_WEBHOOK_URL",
)

VALID_TIERS = ("development", "staging", "production")
PLACEHOLDER_MARKER = "***"

_PREFIXES = {
    "NEXT_PUBLIC_STATSIG_CLIENT_KEY": "client-",
    "STATSIG_CONSOLE_API_KEY": "console-",
}


@dataclass
class EnvValidationResult:
    success: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)


def _is_unset(value: str | None) -> bool:
    return not value or PLACEHOLDER_MARKER in value


def validate_environment(
    environ: Mapping[str, str] | None = None,
    project_root: Path | None = None,
) -> EnvValidationResult:
    """Check the experiment workflow's environment variables.

    Args:
        environ: Variables to check; defaults to ``os.environ``.
        project_root: When given, warn if it has no ``.env.local``.
    """
    env = os.environ if environ is None else environ
    result = EnvValidationResult()

    if project_root is not None and not (project_root / ".env.local").exists():
        result.warnings.append(
            "No .env.local file found. Using system environment variables."
        )

    for name in REQUIRED_VARS:
        if _is_unset(env.get(name)):
            result.errors.append(f"Missing or invalid {name}")
            result.missing.append(name)

    for name in OPTIONAL_VARS:
        if _is_unset(env.get(name)):
            result.warnings.append(f"Optional variable {name} not set")

    for name, prefix in _PREFIXES.items():
        value = env.get(name)
        if not _is_unset(value) and not value.startswith(prefix):
            result.errors.append(f'{name} should start with "{prefix}"')

    tier = env.get("NEXT_PUBLIC_STATSIG_TIER")
    if not _is_unset(tier) and tier not in VALID_TIERS:
        result.errors.append(
            "NEXT_PUBLIC_STATSIG_TIER should be development, staging, or production"
        )

    result.success = not result.errors
    return result

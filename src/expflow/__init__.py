# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""expflow - contract-driven A/B experiment automation.

Reads an experiment contract (``contract/<key>.json``), instruments the
named React/TypeScript functions on an ``exp/<key>`` branch, pushes it,
waits for a Vercel preview and creates the matching Statsig experiment.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("expflow")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

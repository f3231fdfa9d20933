# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Source patcher: inserts experiment checks into TS/TSX components."""

from __future__ import annotations

from expflow.patcher.fast_generator import FastCodeGenerator
from expflow.patcher.generator import CodeGenerator
from expflow.patcher.locators import (
    DeclarationLocator,
    PatternLocator,
    SyntaxTreeLocator,
    make_locator,
)
from expflow.patcher.models import CodeModificationResult, DeclarationSite
from expflow.patcher.patterns import contains_declaration, find_declaration

__all__ = [
    "CodeGenerator",
    "CodeModificationResult",
    "DeclarationLocator",
    "DeclarationSite",
    "FastCodeGenerator",
    "PatternLocator",
    "SyntaxTreeLocator",
    "contains_declaration",
    "find_declaration",
    "make_locator",
]

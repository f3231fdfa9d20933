# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Result types for the source patcher."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DeclarationSite:
    """Where a target function/component lives in a source file.

    Line numbers and columns are zero-based.

    Attributes:
        declaration_line: Line holding the declaration keyword
            (``function``/``const``/``export ...``).
        body_line: Line holding the opening ``{`` of the function body.
        body_column: Column of that opening ``{``.
        is_async: Whether the declaration is ``async``.
    """

    declaration_line: int
    body_line: int
    body_column: int
    is_async: bool = False


@dataclass
class CodeModificationResult:
    """Outcome of applying one code change to one file.

    ``success`` is True exactly when ``errors`` is empty.
    """

    file: str
    function: str
    changes: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

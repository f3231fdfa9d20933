# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Declaration patterns for locating a named function or component.

Patterns are tried in order; the first pattern that matches any line of the
file wins, and the first matching line for that pattern is the declaration.
Order therefore encodes precedence: plain ``function`` declarations beat
exported ones, which beat arrow/function-expression assignments.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Names picked up when drafting a contract from an existing file.
COMPONENT_NAME_PATTERN = re.compile(r"(?:function|const)\s+(\w+)\s*[=(]")

# Optional ``: React.FC<Props>``-style annotation between name and ``=``.
_TYPE_ANNOTATION = r"(?:\s*:[^=]+)?"


@dataclass(frozen=True)
class DeclarationPattern:
    label: str
    template: str

    def compile(self, name: str) -> re.Pattern[str]:
        return re.compile(self.template.format(name=re.escape(name)))


DECLARATION_PATTERNS: tuple[DeclarationPattern, ...] = (
    DeclarationPattern("function", r"^\s*function\s+{name}\s*[(<]"),
    DeclarationPattern("async function", r"^\s*async\s+function\s+{name}\s*[(<]"),
    DeclarationPattern(
        "exported function",
        r"^\s*export\s+(?:default\s+)?(?:async\s+)?function\s+{name}\s*[(<]",
    ),
    DeclarationPattern(
        "arrow function",
        r"^\s*(?:export\s+)?(?:const|let)\s+{name}"
        + _TYPE_ANNOTATION
        + r"\s*=\s*(?:async\s*)?(?:<[^>]*>\s*)?\(",
    ),
    DeclarationPattern(
        "single-parameter arrow function",
        r"^\s*(?:export\s+)?(?:const|let)\s+{name}"
        + _TYPE_ANNOTATION
        + r"\s*=\s*(?:async\s+)?[A-Za-z_$][\w$]*\s*=>",
    ),
    DeclarationPattern(
        "function expression",
        r"^\s*(?:export\s+)?(?:const|let)\s+{name}"
        + _TYPE_ANNOTATION
        + r"\s*=\s*(?:async\s+)?function\b",
    ),
)


def find_declaration(lines: list[str], name: str) -> int | None:
    """Return the index of the line declaring ``name``, or None."""
    for pattern in DECLARATION_PATTERNS:
        regex = pattern.compile(name)
        for index, line in enumerate(lines):
            if regex.match(line):
                return index
    return None


def contains_declaration(content: str, name: str) -> bool:
    """Whether any declaration pattern for ``name`` matches ``content``."""
    return find_declaration(content.splitlines(), name) is not None

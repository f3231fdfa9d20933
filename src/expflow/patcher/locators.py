# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Locators that find a named function/component inside TS/TSX source.

Two strategies share one interface:

- PatternLocator: ordered declaration patterns plus a small signature
  scanner that finds the body's opening brace. Default.
- SyntaxTreeLocator: parses the file with the tree-sitter TSX grammar and
  walks the syntax tree. Selected with ``EXPERIMENT_PATCH_LOCATOR=syntax``.

Both return a :class:`DeclarationSite` or raise ``TargetNotFoundError``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Protocol

from expflow.lib.errors import TargetNotFoundError, UnsupportedDeclarationError
from expflow.patcher.models import DeclarationSite
from expflow.patcher.patterns import find_declaration

if TYPE_CHECKING:
    from tree_sitter import Node

logger = logging.getLogger(__name__)

MAX_SIGNATURE_LINES = 20
_ASYNC = re.compile(r"\basync\b")


class DeclarationLocator(Protocol):
    def locate(self, content: str, function: str, file_label: str) -> DeclarationSite:
        """Find ``function`` in ``content``; ``file_label`` is used in errors."""
        ...


def scan_for_body(
    lines: list[str], start: int, function: str, file_label: str
) -> tuple[int, int]:
    """Find the opening brace of the function body declared at ``start``.

    Tracks parenthesis depth so braces inside destructured parameters are
    skipped. After a top-level ``=>`` the next non-space character must be
    ``{``; anything else is an expression-bodied arrow.

    Returns:
        ``(line_index, column)`` of the body's ``{``.
    """
    depth = 0
    seen_params = False
    after_arrow = False
    end = min(len(lines), start + MAX_SIGNATURE_LINES)

    for line_no in range(start, end):
        line = lines[line_no]
        col = 0
        while col < len(line):
            char = line[col]
            if after_arrow:
                if char == "{":
                    return line_no, col
                if not char.isspace():
                    raise UnsupportedDeclarationError(
                        function, file_label, "arrow function has an expression body"
                    )
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    seen_params = True
            elif depth == 0 and line.startswith("=>", col):
                after_arrow = True
                col += 2
                continue
            elif char == "{" and depth == 0 and seen_params:
                return line_no, col
            col += 1

    raise UnsupportedDeclarationError(
        function,
        file_label,
        f"no function body found within {MAX_SIGNATURE_LINES} lines of the declaration",
    )


class PatternLocator:
    """Locate declarations with the ordered patterns in ``patterns``."""

    def locate(self, content: str, function: str, file_label: str) -> DeclarationSite:
        lines = content.splitlines()
        declaration = find_declaration(lines, function)
        if declaration is None:
            raise TargetNotFoundError(function, file_label)
        body_line, body_column = scan_for_body(
            lines, declaration, function, file_label
        )
        return DeclarationSite(
            declaration_line=declaration,
            body_line=body_line,
            body_column=body_column,
            is_async=bool(_ASYNC.search(lines[declaration])),
        )


# ---------------------------------------------------------------------------
# tree-sitter
# ---------------------------------------------------------------------------

_FUNCTION_DECLARATIONS = frozenset(
    {"function_declaration", "generator_function_declaration"}
)
_FUNCTION_VALUES = frozenset({"arrow_function", "function_expression", "function"})


def _walk(root: Node) -> Iterator[Node]:
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _node_text(node: Node | None) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _statement_start(node: Node) -> Node:
    """Climb from a declaration to its enclosing (possibly exported) statement."""
    current = node
    while current.parent is not None and current.parent.type in (
        "lexical_declaration",
        "variable_declaration",
        "export_statement",
    ):
        current = current.parent
    return current


class SyntaxTreeLocator:
    """Locate declarations by walking a tree-sitter TSX syntax tree.

    Function declarations take precedence over variable-bound arrows and
    function expressions; within a kind the earliest declaration wins.
    """

    def __init__(self) -> None:
        import tree_sitter_typescript
        from tree_sitter import Language, Parser

        self._parser = Parser(Language(tree_sitter_typescript.language_tsx()))

    def _candidates(
        self, root: Node, function: str
    ) -> Iterator[tuple[int, Node, Node, Any]]:
        """Yield ``(rank, statement, function_node, body)`` for each match."""
        for node in _walk(root):
            if node.type in _FUNCTION_DECLARATIONS:
                if _node_text(node.child_by_field_name("name")) == function:
                    yield 0, _statement_start(node), node, node.child_by_field_name(
                        "body"
                    )
            elif node.type == "variable_declarator":
                value = node.child_by_field_name("value")
                if (
                    value is not None
                    and value.type in _FUNCTION_VALUES
                    and _node_text(node.child_by_field_name("name")) == function
                ):
                    yield 1, _statement_start(node), value, value.child_by_field_name(
                        "body"
                    )

    def locate(self, content: str, function: str, file_label: str) -> DeclarationSite:
        source = content.encode("utf-8")
        tree = self._parser.parse(source)
        candidates = sorted(
            self._candidates(tree.root_node, function),
            key=lambda item: (item[0], item[1].start_point[0]),
        )
        if not candidates:
            raise TargetNotFoundError(function, file_label)

        _, statement, function_node, body = candidates[0]
        if body is None or body.type != "statement_block":
            raise UnsupportedDeclarationError(
                function, file_label, "arrow function has an expression body"
            )

        row, byte_column = body.start_point
        line_bytes = source.splitlines()[row]
        column = len(line_bytes[:byte_column].decode("utf-8", errors="ignore"))
        is_async = any(child.type == "async" for child in function_node.children)
        logger.debug(
            "tree-sitter located %s at line %d (body line %d)",
            function,
            statement.start_point[0] + 1,
            row + 1,
        )
        return DeclarationSite(
            declaration_line=statement.start_point[0],
            body_line=row,
            body_column=column,
            is_async=is_async,
        )


def make_locator(kind: str = "pattern") -> DeclarationLocator:
    """Build the locator named by ``Settings.patch_locator``."""
    if kind == "syntax":
        return SyntaxTreeLocator()
    if kind == "pattern":
        return PatternLocator()
    raise ValueError(f"Unknown patch locator: {kind!r}")

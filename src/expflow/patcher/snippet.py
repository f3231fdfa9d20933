# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Rendering of the experiment snippet injected into target components.

A patched component gains:

1. An import of the wrap helper and ``logExposure`` from the storefront's
   Statsig client module (added once per file).
2. A block at the top of the function body that fetches the experiment,
   logs an exposure event and binds the configured parameter to a local
   constant defaulting to ``false``.

The block opens with a marker comment, ``// Experiment: <key> [<component>]``,
which is how an already-instrumented target is recognised.
"""

from __future__ import annotations

import re

from expflow.contracts.models import CodeChange, InsertionPoint, WrapStrategy

STATSIG_CLIENT_MODULE = "../lib/statsigClient"
BODY_INDENT = "  "

_DIRECTIVE = re.compile(r"""^\s*(['"])use (?:client|server|strict)\1;?\s*$""")


def experiment_marker(experiment_key: str, component: str) -> str:
    return f"// Experiment: {experiment_key} [{component}]"


def render_import(wrap_with: WrapStrategy, module: str = STATSIG_CLIENT_MODULE) -> str:
    return f"import {{ {wrap_with.value}, logExposure }} from '{module}';"


def has_module_import(content: str, module: str = STATSIG_CLIENT_MODULE) -> bool:
    """Whether ``content`` has a value import from ``module`` (either quote style).

    ``import type`` statements are erased at compile time and do not count.
    """
    pattern = re.compile(
        r"""\bimport\s+(?!type\b)[^;'"]*?\bfrom\s+(['"])"""
        + re.escape(module)
        + r"\1"
    )
    return bool(pattern.search(content))


def find_import_insert_index(lines: list[str]) -> tuple[int, bool]:
    """Return where a new import line belongs.

    Returns:
        ``(index, after_imports)``: the line index to insert at, and whether
        the file already had an import block (otherwise the import is placed
        after any leading directives such as ``'use client'``).
    """
    last_import_end: int | None = None
    last_directive: int | None = None
    in_import = False

    for index, line in enumerate(lines):
        stripped = line.strip()
        if in_import:
            if " from " in f" {stripped}" or stripped.endswith(";"):
                last_import_end = index
                in_import = False
            continue
        if stripped.startswith("import ") or stripped.startswith("import{"):
            if re.search(r"""\bfrom\s+['"]|^import\s+['"]""", stripped) or (
                stripped.endswith(";")
            ):
                last_import_end = index
            else:
                in_import = True
            continue
        if last_import_end is None and _DIRECTIVE.match(line):
            last_directive = index
            continue
        if not stripped or stripped.startswith("//"):
            continue
        break

    if last_import_end is not None:
        return last_import_end + 1, True
    if last_directive is not None:
        return last_directive + 1, False
    return 0, False


def _indent_block(code: str, indent: str) -> list[str]:
    return [f"{indent}{line}" if line.strip() else "" for line in code.splitlines()]


def render_experiment_block(
    change: CodeChange, experiment_key: str, indent: str = BODY_INDENT
) -> list[str]:
    """Render the statement block for ``change`` as lines without newlines.

    ``customCode`` is placed before or after the generated statements
    according to ``insertionPoint``; ``replace`` substitutes it for them.
    """
    param = change.parameter_usage
    marker = f"{indent}{experiment_marker(experiment_key, change.function)}"

    if change.wrap_with is WrapStrategy.GET_EXPERIMENT_PARAMS:
        fetch = [
            f"{indent}const experimentParams = "
            f"await getExperimentParams('{experiment_key}');",
            f"{indent}const variant = experimentParams.variant;",
        ]
        binding = f"{indent}const {param} = experimentParams.params?.{param} ?? false;"
    else:
        fetch = [
            f"{indent}const experiment = await getExperiment('{experiment_key}');",
            f"{indent}const variant = experiment.variant;",
        ]
        binding = (
            f"{indent}const {param} = experiment.metadata?.config?.{param} ?? false;"
        )

    generated = [
        *fetch,
        "",
        f"{indent}// Log exposure when user sees this experiment",
        f"{indent}await logExposure('{experiment_key}', variant, {{",
        f"{indent}  component: '{change.function}',",
        f"{indent}  parameter: '{param}'",
        f"{indent}}});",
        "",
        f"{indent}// Use experiment parameter: {param}",
        binding,
    ]

    custom = _indent_block(change.custom_code, indent) if change.custom_code else []
    if change.insertion_point is InsertionPoint.REPLACE:
        body = custom
    elif change.insertion_point is InsertionPoint.AFTER:
        body = [*generated, *([""] + custom if custom else [])]
    else:
        body = [*([*custom, ""] if custom else []), *generated]
    return [marker, *body, ""]

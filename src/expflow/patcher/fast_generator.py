# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Fast-path patcher for known storefront component shapes.

Known signatures are matched as literal strings, skipping the pattern scan.
Anything that does not match a known shape falls back to the generic
:class:`CodeGenerator` path, so results are identical for files the generic
patterns handle.
"""

from __future__ import annotations

import logging

from expflow.contracts.models import CodeChange
from expflow.patcher.generator import CodeGenerator
from expflow.patcher.models import DeclarationSite

logger = logging.getLogger(__name__)

KNOWN_SIGNATURES: dict[str, tuple[str, ...]] = {
    "ProductCard": (
        "export default function ProductCard({ product, onAddToCart }: ProductCardProps) {",  # noqa: E501
        "export default function ProductCard({ product }: ProductCardProps) {",
        "export function ProductCard({ product, onAddToCart }: ProductCardProps) {",
        "function ProductCard({ product, onAddToCart }: ProductCardProps) {",
        "const ProductCard = ({ product, onAddToCart }: ProductCardProps) => {",
        "export const ProductCard = ({ product, onAddToCart }: ProductCardProps) => {",
    ),
}


class FastCodeGenerator(CodeGenerator):
    """CodeGenerator with literal-signature lookup for known components."""

    def _find_known_site(self, content: str, function: str) -> DeclarationSite | None:
        for signature in KNOWN_SIGNATURES.get(function, ()):
            for index, line in enumerate(content.splitlines()):
                if line.strip() == signature:
                    return DeclarationSite(
                        declaration_line=index,
                        body_line=index,
                        body_column=line.rindex("{"),
                        is_async="async " in line,
                    )
        return None

    def patch_source(
        self,
        content: str,
        change: CodeChange,
        experiment_key: str,
        file_label: str,
    ) -> tuple[str, list[str]]:
        site = self._find_known_site(content, change.function)
        if site is None:
            return super().patch_source(content, change, experiment_key, file_label)

        logger.debug("Known signature matched for %s", change.function)
        self._check_not_instrumented(content, change, experiment_key, file_label)
        patched = self._insert_block(content, site, change, experiment_key, file_label)
        changes = [
            f"Added experiment check for '{experiment_key}' to {change.function}"
        ]
        patched, import_change = self._ensure_import(patched, change.wrap_with)
        if import_change:
            changes.append(import_change)
        return patched, changes

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Source patcher that instruments TS/TSX components with experiment checks.

For each code change the generator:

1. Locates the target declaration (pattern list by default, or the
   tree-sitter locator).
2. Inserts the experiment block directly after the line holding the
   function body's opening brace.
3. Adds the Statsig client import once per file, after the import block.

The file is written in place with its original line endings. A failed
lookup never modifies the file.

Example:
    >>> from pathlib import Path
    >>> generator = CodeGenerator(Path("."))
    >>> results = generator.apply_code_changes(contract)
    >>> all(r.success for r in results)
    True
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

from expflow.contracts.models import (
    CodeChange,
    ExperimentContract,
    InsertionPoint,
    WrapStrategy,
)
from expflow.lib.errors import (
    AlreadyInstrumentedError,
    RollbackNotFoundError,
    SourceFileNotFoundError,
    SourcePatchError,
    UnsupportedDeclarationError,
)
from expflow.patcher.locators import DeclarationLocator, PatternLocator
from expflow.patcher.models import CodeModificationResult, DeclarationSite
from expflow.patcher.patterns import COMPONENT_NAME_PATTERN
from expflow.patcher.snippet import (
    BODY_INDENT,
    STATSIG_CLIENT_MODULE,
    experiment_marker,
    find_import_insert_index,
    has_module_import,
    render_experiment_block,
    render_import,
)

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess[str]]

ROLLBACK_SUFFIX = ".rollback"
VALIDATION_TIMEOUT_SECONDS = 30


def _named_import_pattern(module: str) -> re.Pattern[str]:
    return re.compile(
        r"import\s*\{(?P<names>[^}]*)\}\s*from\s*(?P<q>['\"])"
        + re.escape(module)
        + r"(?P=q)"
    )


def _detect_newline(content: str) -> str:
    return "\r\n" if "\r\n" in content else "\n"


class CodeGenerator:
    """Line-scanning source patcher.

    Args:
        project_root: Directory code-change file paths are relative to.
        locator: Declaration locator; defaults to :class:`PatternLocator`.
        client_module: Module path the experiment helpers are imported from.
        runner: ``subprocess.run``-compatible callable used for validation.
    """

    def __init__(
        self,
        project_root: Path,
        locator: DeclarationLocator | None = None,
        client_module: str = STATSIG_CLIENT_MODULE,
        runner: Runner = subprocess.run,
    ) -> None:
        self.project_root = project_root
        self.locator = locator or PatternLocator()
        self.client_module = client_module
        self._runner = runner

    def resolve(self, file: str | Path) -> Path:
        path = Path(file)
        return path if path.is_absolute() else self.project_root / path

    # ------------------------------------------------------------------
    # Patching
    # ------------------------------------------------------------------

    def instrument_file(self, change: CodeChange, experiment_key: str) -> list[str]:
        """Apply one code change in place and describe what changed.

        Raises:
            SourceFileNotFoundError: If ``change.file`` does not exist.
            TargetNotFoundError: If no declaration of ``change.function``
                is found; the file is left untouched.
            AlreadyInstrumentedError: If the experiment marker for this
                target is already present; the file is left untouched.
            UnsupportedDeclarationError: If the target has no block body.
        """
        path = self.resolve(change.file)
        if not path.is_file():
            raise SourceFileNotFoundError(change.file)

        # newline="" keeps \r\n intact on read and write.
        with path.open(encoding="utf-8", newline="") as handle:
            content = handle.read()
        patched, changes = self.patch_source(
            content, change, experiment_key, file_label=change.file
        )
        with path.open("w", encoding="utf-8", newline="") as handle:
            handle.write(patched)
        logger.info("Instrumented %s in %s", change.function, change.file)
        return changes

    def patch_source(
        self,
        content: str,
        change: CodeChange,
        experiment_key: str,
        file_label: str,
    ) -> tuple[str, list[str]]:
        """Return the patched source and change descriptions for ``content``."""
        self._check_not_instrumented(content, change, experiment_key, file_label)
        site = self.locator.locate(content, change.function, file_label)
        patched = self._insert_block(content, site, change, experiment_key, file_label)
        changes = [
            f"Added experiment check for '{experiment_key}' to {change.function}"
        ]
        if not site.is_async:
            logger.warning(
                "%s in %s is not declared async; the inserted block uses await",
                change.function,
                file_label,
            )
        patched, import_change = self._ensure_import(patched, change.wrap_with)
        if import_change:
            changes.append(import_change)
        return patched, changes

    def _check_not_instrumented(
        self, content: str, change: CodeChange, experiment_key: str, file_label: str
    ) -> None:
        if experiment_marker(experiment_key, change.function) in content:
            raise AlreadyInstrumentedError(change.function, file_label, experiment_key)

    def _insert_block(
        self,
        content: str,
        site: DeclarationSite,
        change: CodeChange,
        experiment_key: str,
        file_label: str,
    ) -> str:
        newline = _detect_newline(content)
        lines = content.splitlines(keepends=True)

        body_text = lines[site.body_line]
        tail = body_text.rstrip("\r\n")[site.body_column + 1 :].strip()
        if tail and not tail.startswith("//"):
            raise UnsupportedDeclarationError(
                change.function, file_label, "function body is on a single line"
            )

        declaration = lines[site.declaration_line]
        indent = declaration[: len(declaration) - len(declaration.lstrip())]
        block = render_experiment_block(change, experiment_key, indent + BODY_INDENT)

        if not body_text.endswith(("\n", "\r")):
            lines[site.body_line] = body_text + newline
        insert_at = site.body_line + 1
        lines[insert_at:insert_at] = [line + newline for line in block]
        return "".join(lines)

    def _ensure_import(
        self, content: str, wrap_with: WrapStrategy
    ) -> tuple[str, str | None]:
        """Import the wrap helper and ``logExposure`` from the client module.

        An existing named import from the module is extended with any missing
        names instead of adding a second import line.
        """
        needed = (wrap_with.value, "logExposure")
        match = _named_import_pattern(self.client_module).search(content)
        if match:
            present = [n.strip() for n in match.group("names").split(",") if n.strip()]
            imported = {name.split()[0] for name in present}
            missing = [name for name in needed if name not in imported]
            if not missing:
                return content, None
            names = ", ".join([*present, *missing])
            merged = (
                content[: match.start("names")]
                + f" {names} "
                + content[match.end("names") :]
            )
            return merged, (
                f"Added {', '.join(missing)} to import from '{self.client_module}'"
            )

        if has_module_import(content, self.client_module):
            logger.warning(
                "Existing non-named import from %s left as is", self.client_module
            )
            return content, None

        newline = _detect_newline(content)
        lines = content.splitlines(keepends=True)
        index, after_imports = find_import_insert_index(lines)
        import_line = render_import(wrap_with, self.client_module) + newline
        if after_imports:
            new_lines = [import_line]
        elif index > 0:
            new_lines = [newline, import_line]
        else:
            new_lines = [import_line, newline]
        if index > 0 and not lines[index - 1].endswith(("\n", "\r")):
            lines[index - 1] += newline
        lines[index:index] = new_lines
        return "".join(lines), f"Added import from '{self.client_module}'"

    def apply_code_change(
        self, change: CodeChange, experiment_key: str
    ) -> CodeModificationResult:
        """Apply one code change, collecting errors instead of raising."""
        result = CodeModificationResult(file=change.file, function=change.function)
        try:
            result.changes.extend(self.instrument_file(change, experiment_key))
        except (SourcePatchError, OSError, UnicodeDecodeError) as exc:
            logger.error(
                "Failed to instrument %s in %s: %s", change.function, change.file, exc
            )
            result.errors.append(str(exc))
        return result

    def apply_code_changes(
        self, contract: ExperimentContract
    ) -> list[CodeModificationResult]:
        """Attempt every code change in the contract, in declaration order."""
        return [
            self.apply_code_change(change, contract.experiment_key)
            for change in contract.code_changes
        ]

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback_path(self, file: str | Path) -> Path:
        path = self.resolve(file)
        return path.with_name(path.name + ROLLBACK_SUFFIX)

    def create_rollback(self, file: str | Path) -> Path:
        """Copy ``file`` byte-for-byte to ``<file>.rollback``."""
        path = self.resolve(file)
        if not path.is_file():
            raise SourceFileNotFoundError(file)
        rollback = self.rollback_path(file)
        rollback.write_bytes(path.read_bytes())
        logger.info("Created rollback file: %s", rollback)
        return rollback

    def restore_from_rollback(self, file: str | Path) -> None:
        """Restore ``file`` from its sidecar and delete the sidecar.

        Raises:
            RollbackNotFoundError: If no sidecar exists.
        """
        rollback = self.rollback_path(file)
        if not rollback.is_file():
            raise RollbackNotFoundError(rollback)
        self.resolve(file).write_bytes(rollback.read_bytes())
        rollback.unlink()
        logger.info("Restored %s from rollback", file)

    def discard_rollback(self, file: str | Path) -> None:
        """Delete the sidecar for ``file`` if present."""
        self.rollback_path(file).unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Validation and drafting
    # ------------------------------------------------------------------

    def _run_check(self, label: str, command: Sequence[str]) -> str | None:
        try:
            result = self._runner(  # noqa: S603
                list(command),
                cwd=str(self.project_root),
                capture_output=True,
                text=True,
                timeout=VALIDATION_TIMEOUT_SECONDS,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return f"{label} failed: timed out after {VALIDATION_TIMEOUT_SECONDS}s"
        except FileNotFoundError as exc:
            return f"{label} failed: {exc}"
        if result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            return f"{label} failed: {output}"
        return None

    def validate_generated_code(self, file: str | Path) -> tuple[bool, list[str]]:
        """Type-check and lint a patched file with the project's toolchain."""
        target = str(file)
        errors = [
            error
            for error in (
                self._run_check(
                    "TypeScript compilation", ["npx", "tsc", "--noEmit", target]
                ),
                self._run_check("ESLint validation", ["npx", "eslint", target]),
            )
            if error
        ]
        return not errors, errors

    def generate_contract_from_code(
        self, file: str | Path, experiment_key: str
    ) -> dict[str, Any]:
        """Draft a partial contract listing every declaration found in ``file``."""
        path = self.resolve(file)
        if not path.is_file():
            raise SourceFileNotFoundError(file)
        content = path.read_text(encoding="utf-8")
        names = list(dict.fromkeys(COMPONENT_NAME_PATTERN.findall(content)))
        return {
            "experimentKey": experiment_key,
            "name": f"Experiment: {experiment_key}",
            "codeChanges": [
                {
                    "file": str(file),
                    "function": name,
                    "wrapWith": WrapStrategy.GET_EXPERIMENT.value,
                    "parameterUsage": "enabled",
                    "insertionPoint": InsertionPoint.BEFORE.value,
                }
                for name in names
            ],
        }

    def generate_react_component_wrapper(
        self, component: str, experiment_key: str, parameter: str
    ) -> str:
        """Render a standalone async component gated on ``parameter``."""
        change = CodeChange(
            file=f"{component}.tsx", function=component, parameter_usage=parameter
        )
        block = "\n".join(render_experiment_block(change, experiment_key))
        return (
            f"{render_import(WrapStrategy.GET_EXPERIMENT, self.client_module)}\n"
            "\n"
            f"export async function {component}() {{\n"
            f"{block}\n"
            "  return (\n"
            "    <div>\n"
            "      {/* Your component JSX here */}\n"
            f"      {{{parameter} && <div>Experiment feature enabled</div>}}\n"
            "    </div>\n"
            "  );\n"
            "}\n"
        )

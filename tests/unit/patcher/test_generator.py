# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Tests for the line-scanning source patcher.

Covers:
- Block insertion after the body's opening brace (arrow and function forms)
- Import added once, merged into an existing named import
- Failed lookups leave the file byte-identical
- Idempotence guard, CRLF preservation, rollback sidecars
- Toolchain validation through an injected runner
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import pytest

from expflow.contracts.models import CodeChange, validate_contract
from expflow.lib.errors import (
    AlreadyInstrumentedError,
    RollbackNotFoundError,
    SourceFileNotFoundError,
    TargetNotFoundError,
    UnsupportedDeclarationError,
)
from expflow.patcher.fast_generator import FastCodeGenerator
from expflow.patcher.generator import CodeGenerator

pytestmark = pytest.mark.unit

BUTTON_FILE = "src/components/Button.tsx"


def make_change(**overrides: Any) -> CodeChange:
    defaults: dict[str, Any] = {
        "file": BUTTON_FILE,
        "function": "Button",
        "parameter_usage": "showGreen",
    }
    defaults.update(overrides)
    return CodeChange(**defaults)


# =============================================================================
# Insertion
# =============================================================================


class TestInstrumentFile:
    """instrument_file() patches the target in place."""

    def test_arrow_component_gets_block_and_import(self, project: Path) -> None:
        generator = CodeGenerator(project)

        changes = generator.instrument_file(make_change(), "button_color")

        content = (project / BUTTON_FILE).read_text(encoding="utf-8")
        lines = content.splitlines()
        declaration = lines.index(
            "export const Button = async ({ label }: ButtonProps) => {"
        )
        assert lines[declaration + 1] == "  // Experiment: button_color [Button]"
        assert (
            lines[declaration + 2]
            == "  const experiment = await getExperiment('button_color');"
        )
        assert (
            "  const showGreen = experiment.metadata?.config?.showGreen ?? false;"
            in lines
        )
        assert "    component: 'Button'," in lines
        assert lines[lines.index("import React from 'react';") + 1] == (
            "import { getExperiment, logExposure } from '../lib/statsigClient';"
        )
        assert changes == [
            "Added experiment check for 'button_color' to Button",
            "Added import from '../lib/statsigClient'",
        ]

    def test_original_body_follows_block(self, project: Path) -> None:
        CodeGenerator(project).instrument_file(make_change(), "button_color")

        lines = (project / BUTTON_FILE).read_text(encoding="utf-8").splitlines()
        binding = lines.index(
            "  const showGreen = experiment.metadata?.config?.showGreen ?? false;"
        )
        assert lines[binding + 1] == ""
        assert lines[binding + 2] == "  return <button>{label}</button>;"

    def test_nested_function_is_indented_from_declaration(
        self, tmp_path: Path
    ) -> None:
        source = (
            "export class Page {\n"
            "  render() {\n"
            "    function Banner(props: Props) {\n"
            "      return null;\n"
            "    }\n"
            "  }\n"
            "}\n"
        )
        target = tmp_path / "Page.tsx"
        target.write_text(source, encoding="utf-8")

        CodeGenerator(tmp_path).instrument_file(
            make_change(file="Page.tsx", function="Banner"), "banner"
        )

        lines = target.read_text(encoding="utf-8").splitlines()
        marker = lines.index("      // Experiment: banner [Banner]")
        assert lines[marker - 1] == "    function Banner(props: Props) {"

    def test_get_experiment_params_variant(self, project: Path) -> None:
        change = make_change(wrap_with="getExperimentParams")

        CodeGenerator(project).instrument_file(change, "button_color")

        content = (project / BUTTON_FILE).read_text(encoding="utf-8")
        assert "await getExperimentParams('button_color');" in content
        assert (
            "const showGreen = experimentParams.params?.showGreen ?? false;" in content
        )
        assert (
            "import { getExperimentParams, logExposure } from '../lib/statsigClient';"
            in content
        )

    def test_custom_code_placement(self, project: Path) -> None:
        change = make_change(
            insertion_point="after", custom_code="console.log(showGreen);"
        )

        CodeGenerator(project).instrument_file(change, "button_color")

        lines = (project / BUTTON_FILE).read_text(encoding="utf-8").splitlines()
        binding = next(i for i, line in enumerate(lines) if "const showGreen" in line)
        assert lines.index("  console.log(showGreen);") > binding

    def test_replace_uses_only_custom_code(self, project: Path) -> None:
        change = make_change(
            insertion_point="replace", custom_code="const showGreen = true;"
        )

        CodeGenerator(project).instrument_file(change, "button_color")

        content = (project / BUTTON_FILE).read_text(encoding="utf-8")
        assert "  const showGreen = true;" in content
        assert "await getExperiment(" not in content

    def test_crlf_line_endings_preserved(self, tmp_path: Path) -> None:
        target = tmp_path / "Card.tsx"
        target.write_bytes(b"function Card() {\r\n  return null;\r\n}\r\n")

        CodeGenerator(tmp_path).instrument_file(
            make_change(file="Card.tsx", function="Card"), "card"
        )

        data = target.read_bytes()
        assert b"// Experiment: card [Card]\r\n" in data
        assert b"\n" not in data.replace(b"\r\n", b"")


class TestImports:
    """The client import is added at most once per file."""

    def test_no_duplicate_import_for_second_target(self, tmp_path: Path) -> None:
        target = tmp_path / "Widgets.tsx"
        target.write_text(
            "import React from 'react';\n"
            "\n"
            "export function Hero() {\n"
            "  return null;\n"
            "}\n"
            "\n"
            "export function Footer() {\n"
            "  return null;\n"
            "}\n",
            encoding="utf-8",
        )
        generator = CodeGenerator(tmp_path)

        generator.instrument_file(make_change(file="Widgets.tsx", function="Hero"), "w")
        changes = generator.instrument_file(
            make_change(file="Widgets.tsx", function="Footer"), "w"
        )

        content = target.read_text(encoding="utf-8")
        assert content.count("from '../lib/statsigClient'") == 1
        assert changes == ["Added experiment check for 'w' to Footer"]

    def test_existing_named_import_is_extended(self, tmp_path: Path) -> None:
        target = tmp_path / "Hero.tsx"
        target.write_text(
            "import { getExperiment } from '../lib/statsigClient';\n"
            "\n"
            "export async function Hero() {\n"
            "  return null;\n"
            "}\n",
            encoding="utf-8",
        )

        changes = CodeGenerator(tmp_path).instrument_file(
            make_change(file="Hero.tsx", function="Hero"), "hero"
        )

        content = target.read_text(encoding="utf-8")
        assert content.startswith(
            "import { getExperiment, logExposure } from '../lib/statsigClient';\n"
        )
        assert content.count("statsigClient") == 1
        assert "Added logExposure to import from '../lib/statsigClient'" in changes

    def test_type_only_import_gets_value_import(self, tmp_path: Path) -> None:
        target = tmp_path / "Hero.tsx"
        target.write_text(
            "import type { Experiment } from '../lib/statsigClient';\n"
            "\n"
            "export function Hero() {\n"
            "  return null;\n"
            "}\n",
            encoding="utf-8",
        )

        changes = CodeGenerator(tmp_path).instrument_file(
            make_change(file="Hero.tsx", function="Hero"), "hero"
        )

        lines = target.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "import type { Experiment } from '../lib/statsigClient';"
        assert lines[1] == (
            "import { getExperiment, logExposure } from '../lib/statsigClient';"
        )
        assert "Added import from '../lib/statsigClient'" in changes

    def test_import_placed_at_top_without_imports(self, tmp_path: Path) -> None:
        target = tmp_path / "Plain.tsx"
        target.write_text("function Plain() {\n  return 1;\n}\n", encoding="utf-8")

        CodeGenerator(tmp_path).instrument_file(
            make_change(file="Plain.tsx", function="Plain"), "plain"
        )

        lines = target.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("import { getExperiment, logExposure }")
        assert lines[1] == ""
        assert lines[2] == "function Plain() {"


class TestFailures:
    """Lookups that fail never touch the file."""

    def test_target_not_found_leaves_file_identical(self, project: Path) -> None:
        before = (project / BUTTON_FILE).read_bytes()

        with pytest.raises(TargetNotFoundError, match="'Missing' not found"):
            CodeGenerator(project).instrument_file(
                make_change(function="Missing"), "button_color"
            )

        assert (project / BUTTON_FILE).read_bytes() == before

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SourceFileNotFoundError):
            CodeGenerator(tmp_path).instrument_file(
                make_change(file="nope.tsx"), "key"
            )

    def test_second_run_is_rejected(self, project: Path) -> None:
        generator = CodeGenerator(project)
        generator.instrument_file(make_change(), "button_color")
        once = (project / BUTTON_FILE).read_bytes()

        with pytest.raises(AlreadyInstrumentedError):
            generator.instrument_file(make_change(), "button_color")

        assert (project / BUTTON_FILE).read_bytes() == once

    def test_expression_bodied_arrow_is_unsupported(self, tmp_path: Path) -> None:
        target = tmp_path / "Tag.tsx"
        target.write_text(
            "export const Tag = (props: Props) => <span>{props.label}</span>;\n",
            encoding="utf-8",
        )

        with pytest.raises(UnsupportedDeclarationError):
            CodeGenerator(tmp_path).instrument_file(
                make_change(file="Tag.tsx", function="Tag"), "tag"
            )

    def test_single_line_body_is_unsupported(self, tmp_path: Path) -> None:
        target = tmp_path / "One.tsx"
        target.write_text("function One() { return 1; }\n", encoding="utf-8")

        with pytest.raises(UnsupportedDeclarationError, match="single line"):
            CodeGenerator(tmp_path).instrument_file(
                make_change(file="One.tsx", function="One"), "one"
            )


class TestApplyCodeChanges:
    """apply_code_changes() reports per-change results in order."""

    def test_results_follow_contract_order(
        self, project: Path, contract_data: Any
    ) -> None:
        data = contract_data()
        data["codeChanges"].append(
            {
                "file": BUTTON_FILE,
                "function": "Ghost",
                "parameterUsage": "enabled",
            }
        )
        contract = validate_contract(data)

        results = CodeGenerator(project).apply_code_changes(contract)

        assert [r.function for r in results] == ["Button", "Ghost"]
        assert results[0].success
        assert not results[1].success
        assert "'Ghost' not found" in results[1].errors[0]


# =============================================================================
# Rollback
# =============================================================================


class TestRollback:
    def test_restore_round_trip(self, project: Path) -> None:
        generator = CodeGenerator(project)
        original = (project / BUTTON_FILE).read_bytes()

        sidecar = generator.create_rollback(BUTTON_FILE)
        generator.instrument_file(make_change(), "button_color")
        generator.restore_from_rollback(BUTTON_FILE)

        assert sidecar.name == "Button.tsx.rollback"
        assert (project / BUTTON_FILE).read_bytes() == original
        assert not sidecar.exists()

    def test_restore_without_sidecar(self, project: Path) -> None:
        with pytest.raises(RollbackNotFoundError):
            CodeGenerator(project).restore_from_rollback(BUTTON_FILE)

    def test_discard_is_quiet_without_sidecar(self, project: Path) -> None:
        CodeGenerator(project).discard_rollback(BUTTON_FILE)


# =============================================================================
# Validation and drafting
# =============================================================================


class FakeRunner:
    """Records commands and replays canned (returncode, stderr) pairs."""

    def __init__(self, outcomes: list[tuple[int, str]]) -> None:
        self.outcomes = list(outcomes)
        self.commands: list[list[str]] = []

    def __call__(
        self, command: list[str], **kwargs: Any
    ) -> subprocess.CompletedProcess[str]:
        self.commands.append(command)
        code, stderr = self.outcomes.pop(0)
        return subprocess.CompletedProcess(command, code, stdout="", stderr=stderr)


class TestValidateGeneratedCode:
    def test_clean_file(self, tmp_path: Path) -> None:
        runner = FakeRunner([(0, ""), (0, "")])

        ok, errors = CodeGenerator(tmp_path, runner=runner).validate_generated_code(
            "Button.tsx"
        )

        assert ok
        assert errors == []
        assert runner.commands[0] == ["npx", "tsc", "--noEmit", "Button.tsx"]
        assert runner.commands[1] == ["npx", "eslint", "Button.tsx"]

    def test_lint_failure_reported(self, tmp_path: Path) -> None:
        runner = FakeRunner([(0, ""), (1, "no-unused-vars")])

        ok, errors = CodeGenerator(tmp_path, runner=runner).validate_generated_code(
            "Button.tsx"
        )

        assert not ok
        assert errors == ["ESLint validation failed: no-unused-vars"]


class TestDrafting:
    def test_generate_contract_from_code(self, project: Path) -> None:
        draft = CodeGenerator(project).generate_contract_from_code(
            BUTTON_FILE, "button_color"
        )

        assert draft["experimentKey"] == "button_color"
        assert [c["function"] for c in draft["codeChanges"]] == ["Button"]

    def test_component_wrapper(self, tmp_path: Path) -> None:
        source = CodeGenerator(tmp_path).generate_react_component_wrapper(
            "PrimeBanner", "prime_banner", "showBanner"
        )

        assert source.startswith("import { getExperiment, logExposure }")
        assert "export async function PrimeBanner() {" in source
        assert "{showBanner && <div>Experiment feature enabled</div>}" in source


# =============================================================================
# Fast path
# =============================================================================


class TestFastCodeGenerator:
    def test_known_signature(self, tmp_path: Path) -> None:
        target = tmp_path / "ProductCard.tsx"
        target.write_text(
            "export default function ProductCard({ product }: ProductCardProps) {\n"
            "  return null;\n"
            "}\n",
            encoding="utf-8",
        )

        FastCodeGenerator(tmp_path).instrument_file(
            make_change(file="ProductCard.tsx", function="ProductCard"), "card"
        )

        lines = target.read_text(encoding="utf-8").splitlines()
        marker = lines.index("  // Experiment: card [ProductCard]")
        assert lines[marker - 1].startswith("export default function ProductCard(")

    def test_unknown_shape_matches_generic_output(self, project: Path) -> None:
        content = (project / BUTTON_FILE).read_text(encoding="utf-8")
        change = make_change()

        fast = FastCodeGenerator(project).patch_source(
            content, change, "button_color", BUTTON_FILE
        )
        generic = CodeGenerator(project).patch_source(
            content, change, "button_color", BUTTON_FILE
        )

        assert fast == generic

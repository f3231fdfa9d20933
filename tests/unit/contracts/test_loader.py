# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Tests for ContractLoader: discovery, bootstrap and strict loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from expflow.contracts.loader import ContractLoader
from expflow.lib.errors import ContractValidationError

pytestmark = pytest.mark.unit


@pytest.fixture
def loader(project: Path) -> ContractLoader:
    return ContractLoader(project / "contract")


class TestLoad:
    def test_loads_existing_contract(self, loader: ContractLoader) -> None:
        contract = loader.load("button_color")

        assert contract.experiment_key == "button_color"

    def test_explicit_path_overrides_default(
        self, loader: ContractLoader, project: Path
    ) -> None:
        custom = project / "contracts" / "button_test.json"
        custom.parent.mkdir()
        custom.write_text(
            (project / "contract" / "button_color.json").read_text(encoding="utf-8"),
            encoding="utf-8",
        )

        contract = loader.load("button_color", custom)

        assert contract.branch_name == "exp/button_color"

    def test_missing_contract_is_bootstrapped(self, loader: ContractLoader) -> None:
        with pytest.raises(ContractValidationError, match="codeChanges"):
            loader.load("prime_banner")

        written = json.loads(
            loader.contract_path("prime_banner").read_text(encoding="utf-8")
        )
        assert written["branchConfig"]["branchName"] == "exp/prime_banner"
        assert written["codeChanges"] == []

    def test_invalid_json(self, loader: ContractLoader) -> None:
        loader.contract_path("broken").write_text("{not json", encoding="utf-8")

        with pytest.raises(ContractValidationError, match="Invalid JSON"):
            loader.load("broken")


class TestLoadExisting:
    def test_does_not_bootstrap(self, loader: ContractLoader) -> None:
        path = loader.contract_path("prime_banner")

        with pytest.raises(FileNotFoundError):
            loader.load_existing(path)

        assert not path.exists()


class TestDiscover:
    def test_sorted_keys(self, loader: ContractLoader) -> None:
        loader.write_default("alpha")

        assert loader.discover() == ["alpha", "button_color"]
        assert loader.exists("alpha")

    def test_missing_directory(self, tmp_path: Path) -> None:
        assert ContractLoader(tmp_path / "contract").discover() == []

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Contract loader for experiment contracts.

Contracts live at ``<contracts_root>/<experiment_key>.json``. Loading a key
whose file does not exist writes the default template first so the tool is
self-bootstrapping; the template then fails validation until the developer
fills in ``codeChanges``.

Usage:
    >>> from pathlib import Path
    >>> from expflow.contracts.loader import ContractLoader
    >>>
    >>> loader = ContractLoader(Path("contract"))
    >>> contract = loader.load("prime_banner")
    >>> print(contract.branch_name)
    exp/prime_banner
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from expflow.contracts.models import (
    ExperimentContract,
    create_default_contract,
    validate_contract,
)
from expflow.lib.errors import ContractValidationError

logger = logging.getLogger(__name__)


class ContractLoader:
    """Reads, bootstraps and validates experiment contracts.

    Attributes:
        contracts_root: Directory holding ``<key>.json`` contract files.
    """

    GLOB_PATTERN = "*.json"
    """Glob pattern for discovering contract files."""

    def __init__(self, contracts_root: Path) -> None:
        self._contracts_root = contracts_root
        logger.debug("ContractLoader initialized with root: %s", contracts_root)

    @property
    def contracts_root(self) -> Path:
        """Return the contracts root directory."""
        return self._contracts_root

    def contract_path(self, experiment_key: str) -> Path:
        return self._contracts_root / f"{experiment_key}.json"

    def exists(self, experiment_key: str) -> bool:
        return self.contract_path(experiment_key).is_file()

    def discover(self) -> list[str]:
        """Return the experiment keys of every contract file, sorted.

        Returns an empty list when the contracts directory does not exist.
        """
        if not self._contracts_root.is_dir():
            logger.warning(
                "Contracts directory does not exist: %s", self._contracts_root
            )
            return []
        return sorted(p.stem for p in self._contracts_root.glob(self.GLOB_PATTERN))

    def write_default(self, experiment_key: str, path: Path | None = None) -> Path:
        """Write the default template for ``experiment_key`` and return its path."""
        target = path or self.contract_path(experiment_key)
        target.parent.mkdir(parents=True, exist_ok=True)
        template = create_default_contract(experiment_key)
        target.write_text(json.dumps(template, indent=2) + "\n", encoding="utf-8")
        logger.info("Created default contract: %s", target)
        return target

    def read_raw(self, path: Path) -> object:
        """Parse a contract file as JSON.

        Raises:
            ContractValidationError: If the file is not valid JSON.
        """
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ContractValidationError(
                [f"<root>: Invalid JSON in {path} (line {exc.lineno}): {exc.msg}"]
            ) from exc

    def load(self, experiment_key: str, path: Path | None = None) -> ExperimentContract:
        """Load and validate the contract for ``experiment_key``.

        Args:
            experiment_key: Key naming ``<contracts_root>/<key>.json``.
            path: Explicit contract path overriding the default location.

        Raises:
            ContractValidationError: If the document is malformed.
        """
        contract_file = path or self.contract_path(experiment_key)
        if not contract_file.exists():
            logger.info(
                "Contract file not found. Creating default contract: %s", contract_file
            )
            self.write_default(experiment_key, contract_file)

        contract = validate_contract(self.read_raw(contract_file))
        if contract.experiment_key != experiment_key:
            logger.warning(
                "Contract %s declares experimentKey %r, expected %r",
                contract_file,
                contract.experiment_key,
                experiment_key,
            )
        return contract

    def load_existing(self, path: Path) -> ExperimentContract:
        """Load and validate a contract file that must already exist.

        Raises:
            FileNotFoundError: If the file does not exist.
            ContractValidationError: If the document is malformed.
        """
        if not path.is_file():
            raise FileNotFoundError(f"Contract file not found: {path}")
        return validate_contract(self.read_raw(path))

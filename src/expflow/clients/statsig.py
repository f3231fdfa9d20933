# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Statsig Console API client.

Endpoints (base ``https://statsigapi.net/console/v1``, header
``STATSIG-API-KEY``):

    POST /experiments                 create
    GET  /experiments/{id}            read
    POST /experiments/{id}            full update (also start/stop)
    GET  /experiments                 list
    GET  /experiments/{id}/results    pulse results

Responses are wrapped as ``{"data": ...}``; the wrapper is removed here.
The payload builders translate a contract into the console's config shape.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from expflow.clients.base import DEFAULT_TIMEOUT_SECONDS, BaseAPIClient
from expflow.clients.models import ExperimentStatus, ExperimentSummary
from expflow.contracts.models import ExperimentContract, IdType
from expflow.lib.errors import MissingCredentialsError, RemoteAPIError

if TYPE_CHECKING:
    from expflow.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://statsigapi.net/console/v1"
DEFAULT_HYPOTHESIS = "Testing new feature"
EXPERIMENT_TAGS = ["★ Core"]

_ID_TYPES = {
    IdType.USER_ID: "userID",
    IdType.UNIT_ID: "stableID",
}


def map_id_type(id_type: IdType) -> str:
    return _ID_TYPES.get(id_type, "userID")


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _description(contract: ExperimentContract) -> str:
    return contract.description or f"Experiment: {contract.experiment_key}"


def build_experiment_config(contract: ExperimentContract) -> dict[str, Any]:
    """Build the create-experiment payload.

    Group sizes are normalised so they sum to (about) 100 even when the
    contract's pass percentages do not.
    """
    total = sum(variant.pass_percentage for variant in contract.variants.values())
    groups = []
    for key, variant in contract.variants.items():
        share = (
            variant.pass_percentage / total * 100
            if total
            else 100 / len(contract.variants)
        )
        group: dict[str, Any] = {
            "name": variant.name,
            "id": key,
            "size": _round_half_up(share),
            "parameterValues": variant.parameters,
        }
        if variant.description:
            group["description"] = variant.description
        groups.append(group)

    config: dict[str, Any] = {
        "id": contract.experiment_key,
        "name": contract.name,
        "description": _description(contract),
        "hypothesis": contract.hypothesis or DEFAULT_HYPOTHESIS,
        "groups": groups,
        "primaryMetrics": [],
        "secondaryMetrics": [],
        "idType": map_id_type(contract.statsig.id_type),
        "tags": list(EXPERIMENT_TAGS),
    }
    if contract.statsig.targeting_gate_id:
        config["targetingGateID"] = contract.statsig.targeting_gate_id
    return config


def build_targeting_config(contract: ExperimentContract) -> dict[str, Any]:
    """Build the full-update payload that configures allocation and groups.

    The console's experiment update takes no rule list; targeting rules
    are enforced through ``targetingGateID``.
    """
    return {
        "description": _description(contract),
        "idType": map_id_type(contract.statsig.id_type),
        "hypothesis": contract.hypothesis or DEFAULT_HYPOTHESIS,
        "groups": [
            {
                "name": variant.name,
                "size": variant.pass_percentage,
                "parameterValues": variant.parameters,
            }
            for variant in contract.variants.values()
        ],
        "allocation": contract.allocation,
        "targetingGateID": contract.statsig.targeting_gate_id,
        "bonferroniCorrection": False,
        "defaultConfidenceInterval": "95",
        "status": ExperimentStatus.SETUP.value,
    }


def _unwrap(payload: Any) -> Any:
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class StatsigConsoleClient(BaseAPIClient):
    """Client for experiment management through the Statsig Console API.

    Raises:
        MissingCredentialsError: If constructed without an API key.
    """

    service = "statsig"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise MissingCredentialsError("Statsig", ["STATSIG_CONSOLE_API_KEY"])
        super().__init__(
            base_url,
            headers={"STATSIG-API-KEY": api_key, "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> StatsigConsoleClient:
        missing = settings.missing_statsig()
        if missing:
            raise MissingCredentialsError("Statsig", missing)
        return cls(
            settings.statsig_console_api_key,
            base_url=settings.statsig_api_base_url,
            timeout=settings.http_timeout_seconds,
            transport=transport,
        )

    @staticmethod
    def _path(experiment_id: str, suffix: str = "") -> str:
        return f"/experiments/{quote(experiment_id, safe='')}{suffix}"

    def create_experiment(self, config: dict[str, Any]) -> str:
        """Create an experiment and return its id."""
        data = _unwrap(self._request("POST", "/experiments", json=config))
        experiment_id = data.get("id") if isinstance(data, dict) else None
        if not experiment_id:
            raise RemoteAPIError(self.service, 200, "No experiment ID returned")
        logger.info("Created Statsig experiment %s", experiment_id)
        return str(experiment_id)

    def get_experiment(self, experiment_id: str) -> dict[str, Any]:
        data = _unwrap(self._request("GET", self._path(experiment_id)))
        return data if isinstance(data, dict) else {}

    def update_experiment(self, experiment_id: str, config: dict[str, Any]) -> bool:
        self._request("POST", self._path(experiment_id), json=config)
        logger.info("Updated Statsig experiment %s", experiment_id)
        return True

    def _set_status(self, experiment_id: str, status: ExperimentStatus) -> bool:
        current = self.get_experiment(experiment_id)
        return self.update_experiment(
            experiment_id, {**current, "status": status.value}
        )

    def start_experiment(self, experiment_id: str) -> bool:
        return self._set_status(experiment_id, ExperimentStatus.ACTIVE)

    def stop_experiment(self, experiment_id: str) -> bool:
        return self._set_status(experiment_id, ExperimentStatus.STOPPED)

    def list_experiments(self) -> list[ExperimentSummary]:
        data = _unwrap(self._request("GET", "/experiments"))
        items = data if isinstance(data, list) else []
        return [
            ExperimentSummary(
                id=str(item.get("id", "")),
                name=str(item.get("name") or ""),
                status=str(item.get("status") or ""),
            )
            for item in items
            if isinstance(item, dict)
        ]

    def get_experiment_status(self, experiment_id: str) -> str:
        return str(self.get_experiment(experiment_id).get("status") or "unknown")

    def get_experiment_results(
        self, experiment_id: str, control_group: str, test_group: str
    ) -> dict[str, Any]:
        data = _unwrap(
            self._request(
                "GET",
                self._path(experiment_id, "/results"),
                params={"control": control_group, "test": test_group},
            )
        )
        return data if isinstance(data, dict) else {}

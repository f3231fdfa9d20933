# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

# Copyright (c) 2025 OmniNode Team
"""Tests for the Statsig Console API client and payload builders.

All HTTP goes through ``httpx.MockTransport``; nothing leaves the process.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from expflow.clients.statsig import (
    StatsigConsoleClient,
    build_experiment_config,
    build_targeting_config,
    map_id_type,
)
from expflow.contracts.models import IdType, validate_contract
from expflow.lib.errors import MissingCredentialsError, RemoteAPIError, TransportError

pytestmark = pytest.mark.unit

Handler = Callable[[httpx.Request], httpx.Response]


class Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)

    def body(self, index: int) -> Any:
        return json.loads(self.requests[index].content)


def make_client(recorder: Handler) -> StatsigConsoleClient:
    return StatsigConsoleClient(
        "console-test", transport=httpx.MockTransport(recorder)
    )


# =============================================================================
# Payload builders
# =============================================================================


class TestMappings:
    def test_id_types(self) -> None:
        assert map_id_type(IdType.USER_ID) == "userID"
        assert map_id_type(IdType.UNIT_ID) == "stableID"


class TestBuildExperimentConfig:
    def test_shape(self, contract_data: Any) -> None:
        config = build_experiment_config(validate_contract(contract_data()))

        assert config["id"] == "button_color"
        assert config["name"] == "Button color test"
        assert config["idType"] == "userID"
        assert config["tags"] == ["★ Core"]
        assert config["primaryMetrics"] == []
        assert [g["id"] for g in config["groups"]] == ["control", "treatment"]
        assert [g["size"] for g in config["groups"]] == [50, 50]
        assert config["groups"][1]["parameterValues"] == {"color": "green"}
        assert "targetingGateID" not in config

    def test_sizes_are_normalised(self, contract_data: Any) -> None:
        data = contract_data()
        data["variants"]["control"]["passPercentage"] = 30
        data["variants"]["treatment"]["passPercentage"] = 30

        config = build_experiment_config(validate_contract(data))

        assert [g["size"] for g in config["groups"]] == [50, 50]

    def test_defaults_for_missing_text(self, contract_data: Any) -> None:
        data = contract_data(description=None, hypothesis=None)
        data["statsig"]["targetingGateID"] = "internal"

        config = build_experiment_config(validate_contract(data))

        assert config["description"] == "Experiment: button_color"
        assert config["hypothesis"] == "Testing new feature"
        assert config["targetingGateID"] == "internal"


class TestBuildTargeting:
    def test_targeting_config(self, contract_data: Any) -> None:
        config = build_targeting_config(validate_contract(contract_data()))

        assert config["allocation"] == 100
        assert config["status"] == "setup"
        assert config["defaultConfidenceInterval"] == "95"
        assert config["bonferroniCorrection"] is False
        assert config["targetingGateID"] is None
        assert "rules" not in config


# =============================================================================
# Client
# =============================================================================


class TestStatsigConsoleClient:
    def test_missing_key(self) -> None:
        with pytest.raises(MissingCredentialsError) as exc_info:
            StatsigConsoleClient("")

        assert exc_info.value.missing == ["STATSIG_CONSOLE_API_KEY"]

    def test_create_sends_key_header(self) -> None:
        recorder = Recorder(httpx.Response(201, json={"data": {"id": "exp_1"}}))

        with make_client(recorder) as client:
            experiment_id = client.create_experiment({"id": "exp_1"})

        assert experiment_id == "exp_1"
        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/console/v1/experiments"
        assert request.headers["STATSIG-API-KEY"] == "console-test"

    def test_create_without_id(self) -> None:
        recorder = Recorder(httpx.Response(200, json={"data": {}}))

        with pytest.raises(RemoteAPIError, match="No experiment ID returned"):
            make_client(recorder).create_experiment({})

    def test_error_status(self) -> None:
        recorder = Recorder(httpx.Response(401, text="bad key"))

        with pytest.raises(RemoteAPIError) as exc_info:
            make_client(recorder).get_experiment("exp_1")

        assert exc_info.value.status == 401
        assert exc_info.value.body == "bad key"
        assert str(exc_info.value) == "statsig API error: 401 - bad key"

    def test_transport_failure(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="connection refused"):
            make_client(refuse).list_experiments()

    def test_start_posts_full_update(self) -> None:
        recorder = Recorder(
            httpx.Response(200, json={"data": {"id": "exp_1", "status": "setup"}}),
            httpx.Response(200, json={"data": {}}),
        )

        assert make_client(recorder).start_experiment("exp_1")

        assert recorder.requests[1].method == "POST"
        assert recorder.requests[1].url.path == "/console/v1/experiments/exp_1"
        assert recorder.body(1) == {"id": "exp_1", "status": "active"}

    def test_stop_sets_stopped_status(self) -> None:
        recorder = Recorder(
            httpx.Response(200, json={"data": {"id": "exp_1", "status": "active"}}),
            httpx.Response(200, json={"data": {}}),
        )

        make_client(recorder).stop_experiment("exp_1")

        assert recorder.body(1)["status"] == "experiment_stopped"

    def test_list_and_status(self) -> None:
        recorder = Recorder(
            httpx.Response(
                200,
                json={"data": [{"id": "a", "name": "A", "status": "active"}, "junk"]},
            ),
            httpx.Response(200, json={"data": {"id": "a"}}),
        )
        client = make_client(recorder)

        summaries = client.list_experiments()
        status = client.get_experiment_status("a")

        assert [(s.id, s.name, s.status) for s in summaries] == [("a", "A", "active")]
        assert status == "unknown"

    def test_results_query(self) -> None:
        recorder = Recorder(httpx.Response(200, json={"data": {"lift": 0.1}}))

        results = make_client(recorder).get_experiment_results(
            "exp_1", "control", "treatment"
        )

        assert results == {"lift": 0.1}
        request = recorder.requests[0]
        assert request.url.path == "/console/v1/experiments/exp_1/results"
        assert request.url.params["control"] == "control"
        assert request.url.params["test"] == "treatment"

# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Experiment contract models.

An experiment contract is the JSON document (``contract/<key>.json``) that
declares an experiment's variants, the source files to instrument, its
targeting rules and how it is deployed. Field names on the wire are
camelCase; Python attributes are snake_case.

Models:
- ExperimentContract: root document, immutable once loaded for a run
- Variant: one arm of the experiment
- CodeChange: one function/component to instrument
- TargetingRule / TargetingCondition: traffic targeting
- Metric: primary/secondary metric declaration
- BranchConfig / DeploymentConfig / StatsigConfig / ContractMetadata

Entry points:
- validate_contract(raw): parse + validate, reporting every violation
- create_default_contract(key): self-bootstrapping template
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from expflow.lib.errors import ContractValidationError

BRANCH_NAME_PATTERN = re.compile(r"^exp/[a-z0-9_-]+$", re.IGNORECASE)
BRANCH_PREFIX = "exp/"
_JS_IDENTIFIER = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")
MIN_VARIANTS = 2
VARIANT_COUNT_MESSAGE = "At least 2 variants are required (control and treatment)"

DEFAULT_DEPLOYMENT_TIMEOUT_MS = 300_000


class WrapStrategy(StrEnum):
    GET_EXPERIMENT = "getExperiment"
    GET_EXPERIMENT_PARAMS = "getExperimentParams"


class InsertionPoint(StrEnum):
    BEFORE = "before"
    AFTER = "after"
    REPLACE = "replace"


class ConditionType(StrEnum):
    BRANCH = "branch"
    URL = "url"
    USER_ID = "user_id"
    CUSTOM_FIELD = "custom_field"
    ENVIRONMENT = "environment"


class ConditionOperator(StrEnum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"


class MetricType(StrEnum):
    COUNT = "count"
    RATIO = "ratio"
    REVENUE = "revenue"
    DURATION = "duration"


class MetricDirection(StrEnum):
    INCREASE = "increase"
    DECREASE = "decrease"


class DeploymentPlatform(StrEnum):
    VERCEL = "vercel"
    NETLIFY = "netlify"
    OTHER = "other"


class IdType(StrEnum):
    USER_ID = "user_id"
    UNIT_ID = "unit_id"


class StatsigEnvironment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class _ContractModel(BaseModel):
    """Base for contract models: camelCase on the wire, frozen in memory."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class Variant(_ContractModel):
    """One arm of an experiment (e.g. control or treatment)."""

    name: str = Field(min_length=1)
    description: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    pass_percentage: float = Field(default=50, ge=0, le=100)


class CodeChange(_ContractModel):
    """A function/component to instrument with an experiment check."""

    file: str = Field(min_length=1)
    function: str = Field(min_length=1)
    wrap_with: WrapStrategy = WrapStrategy.GET_EXPERIMENT
    parameter_usage: str = Field(min_length=1)
    insertion_point: InsertionPoint = InsertionPoint.BEFORE
    custom_code: str | None = None

    @field_validator("parameter_usage")
    @classmethod
    def validate_parameter_identifier(cls, value: str) -> str:
        """The parameter is bound as a JS ``const``, so it must be an identifier."""
        if not _JS_IDENTIFIER.match(value):
            raise ValueError(
                f"Parameter usage must be a valid identifier, got {value!r}"
            )
        return value

    @model_validator(mode="after")
    def validate_replace_has_code(self) -> CodeChange:
        if self.insertion_point is InsertionPoint.REPLACE and not self.custom_code:
            raise ValueError("insertionPoint 'replace' requires customCode")
        return self


class TargetingCondition(_ContractModel):
    type: ConditionType
    field: str | None = None
    operator: ConditionOperator = ConditionOperator.EQUALS
    target_value: str | list[str] | int | float


class TargetingRule(_ContractModel):
    name: str = Field(min_length=1)
    conditions: list[TargetingCondition]
    pass_percentage: float = Field(default=100, ge=0, le=100)
    environments: list[str] | None = None

    @field_validator("conditions")
    @classmethod
    def validate_has_condition(
        cls, value: list[TargetingCondition]
    ) -> list[TargetingCondition]:
        if not value:
            raise ValueError("At least one condition is required")
        return value


class Metric(_ContractModel):
    name: str = Field(min_length=1)
    type: MetricType = MetricType.COUNT
    direction: MetricDirection = MetricDirection.INCREASE
    hypothesized_value: float | None = None


class BranchConfig(_ContractModel):
    branch_name: str
    target_branch: str = "main"
    create_from_branch: str = "main"

    @field_validator("branch_name")
    @classmethod
    def validate_branch_name(cls, value: str) -> str:
        if not BRANCH_NAME_PATTERN.match(value):
            raise ValueError("Branch name must match exp/<key> pattern")
        return value


class DeploymentConfig(_ContractModel):
    platform: DeploymentPlatform = DeploymentPlatform.VERCEL
    preview_domain: str | None = None
    wait_for_deployment: bool = True
    deployment_timeout: int = Field(default=DEFAULT_DEPLOYMENT_TIMEOUT_MS, gt=0)


class StatsigConfig(_ContractModel):
    id_type: IdType = IdType.USER_ID
    environment: StatsigEnvironment = StatsigEnvironment.DEVELOPMENT
    auto_start: bool = False
    targeting_gate_id: str | None = Field(default=None, alias="targetingGateID")


class ContractMetadata(_ContractModel):
    """Free-form metadata; unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")

    author: str | None = None
    tags: list[str] = Field(default_factory=list)
    estimated_duration: str | None = None
    success_criteria: str | None = None


# ---------------------------------------------------------------------------
# Root contract
# ---------------------------------------------------------------------------


class ExperimentContract(_ContractModel):
    """Root experiment contract.

    Invariants:
    1. ``variants`` has at least 2 entries
    2. ``codeChanges`` has at least 1 entry
    3. ``branchConfig.branchName`` matches ``exp/[a-z0-9_-]+`` (any case)
    """

    experiment_key: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    hypothesis: str | None = None
    variants: dict[str, Variant]
    code_changes: list[CodeChange]
    targeting_rules: list[TargetingRule] = Field(default_factory=list)
    allocation: float = Field(default=100, ge=0, le=100)
    primary_metrics: list[Metric] = Field(default_factory=list)
    secondary_metrics: list[Metric] = Field(default_factory=list)
    branch_config: BranchConfig
    deployment: DeploymentConfig = Field(default_factory=DeploymentConfig)
    statsig: StatsigConfig = Field(default_factory=StatsigConfig)
    metadata: ContractMetadata = Field(default_factory=ContractMetadata)

    @model_validator(mode="before")
    @classmethod
    def default_name_from_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name"):
            key = data.get("experimentKey") or data.get("experiment_key")
            if isinstance(key, str) and key:
                data = {**data, "name": f"Experiment: {key}"}
        return data

    @field_validator("variants", mode="before")
    @classmethod
    def default_variant_names(cls, value: Any) -> Any:
        """A variant without a ``name`` is named after its mapping key."""
        if not isinstance(value, dict):
            return value
        named: dict[Any, Any] = {}
        for key, variant in value.items():
            if isinstance(variant, dict) and "name" not in variant:
                variant = {**variant, "name": str(key)}
            named[key] = variant
        return named

    @field_validator("variants")
    @classmethod
    def validate_variant_count(cls, value: dict[str, Variant]) -> dict[str, Variant]:
        if len(value) < MIN_VARIANTS:
            raise ValueError(VARIANT_COUNT_MESSAGE)
        return value

    @field_validator("code_changes")
    @classmethod
    def validate_code_change_count(cls, value: list[CodeChange]) -> list[CodeChange]:
        if not value:
            raise ValueError("At least one code change is required")
        return value

    @property
    def branch_name(self) -> str:
        return self.branch_config.branch_name

    @property
    def changed_files(self) -> list[str]:
        """Distinct files named by ``codeChanges``, in declaration order."""
        return list(dict.fromkeys(change.file for change in self.code_changes))

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize back to the camelCase JSON document shape."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _format_error_location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Render a pydantic ValidationError as ``"<path>: <message>"`` lines."""
    lines: list[str] = []
    for error in exc.errors():
        message = error["msg"].removeprefix("Value error, ")
        lines.append(f"{_format_error_location(error['loc'])}: {message}")
    return lines


def _with_variant_count_error(raw: dict[str, Any], errors: list[str]) -> list[str]:
    """Add the variant-count error pydantic skips when a variant is invalid.

    After-validators do not run once a nested field fails, so a single bad
    variant would otherwise hide the count violation.
    """
    variants = raw.get("variants")
    message = f"variants: {VARIANT_COUNT_MESSAGE}"
    if not isinstance(variants, dict) or len(variants) >= MIN_VARIANTS:
        return errors
    if message in errors:
        return errors
    index = next(
        (i for i, line in enumerate(errors) if line.startswith("variants")),
        len(errors),
    )
    return [*errors[:index], message, *errors[index:]]


def validate_contract(raw: Any) -> ExperimentContract:
    """Validate a raw contract document.

    Args:
        raw: Parsed JSON (normally a dict).

    Returns:
        The validated, immutable contract.

    Raises:
        ContractValidationError: Listing every violated constraint.
    """
    if not isinstance(raw, dict):
        raise ContractValidationError(
            [f"<root>: Expected a JSON object, got {type(raw).__name__}"]
        )
    try:
        return ExperimentContract.model_validate(raw)
    except ValidationError as exc:
        errors = _with_variant_count_error(raw, format_validation_errors(exc))
        raise ContractValidationError(errors) from exc


def create_default_contract(experiment_key: str) -> dict[str, Any]:
    """Create a template contract for a new experiment key.

    The template carries a 50/50 control/treatment split and a single
    branch-based targeting rule. ``codeChanges`` is intentionally empty, so
    the template does not validate until the developer names at least one
    function to instrument.
    """
    branch_name = f"{BRANCH_PREFIX}{experiment_key}"
    return {
        "experimentKey": experiment_key,
        "name": f"Experiment: {experiment_key}",
        "description": "Experiment description goes here",
        "hypothesis": "What we expect to happen",
        "variants": {
            "control": {
                "name": "Control",
                "description": "Baseline experience",
                "parameters": {},
                "passPercentage": 50,
            },
            "treatment": {
                "name": "Treatment",
                "description": "New experience",
                "parameters": {},
                "passPercentage": 50,
            },
        },
        "codeChanges": [],
        "targetingRules": [
            {
                "name": "Branch-based targeting",
                "conditions": [
                    {
                        "type": ConditionType.BRANCH.value,
                        "operator": ConditionOperator.EQUALS.value,
                        "targetValue": branch_name,
                    }
                ],
                "passPercentage": 100,
                "environments": [StatsigEnvironment.DEVELOPMENT.value],
            }
        ],
        "branchConfig": {
            "branchName": branch_name,
            "targetBranch": "main",
            "createFromBranch": "main",
        },
        "deployment": {
            "platform": DeploymentPlatform.VERCEL.value,
            "waitForDeployment": True,
            "deploymentTimeout": DEFAULT_DEPLOYMENT_TIMEOUT_MS,
        },
        "statsig": {
            "idType": IdType.USER_ID.value,
            "environment": StatsigEnvironment.DEVELOPMENT.value,
            "autoStart": False,
        },
        "metadata": {
            "tags": ["automated", "branch-based"],
        },
    }

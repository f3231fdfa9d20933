# SPDX-License-Identifier: MIT
# Copyright (c) 2025 OmniNode Team
"""Remote entities returned by the Statsig, Vercel and GitHub clients.

These are snapshots of remote state; nothing here is cached and every read
re-fetches.
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from expflow.lib.errors import DeploymentFailedError, DeploymentTimeoutError

logger = logging.getLogger(__name__)


class _RemoteModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# ---------------------------------------------------------------------------
# Statsig
# ---------------------------------------------------------------------------


class ExperimentStatus(StrEnum):
    """Experiment lifecycle status as stored by the Statsig console."""

    SETUP = "setup"
    ACTIVE = "active"
    STOPPED = "experiment_stopped"
    DECISION_MADE = "decision_made"
    ABANDONED = "abandoned"

    @classmethod
    def _missing_(cls, value: object) -> ExperimentStatus | None:
        if value == "stopped":
            return cls.STOPPED
        return None


class ExperimentSummary(_RemoteModel):
    id: str
    name: str = ""
    status: str = ""


# ---------------------------------------------------------------------------
# Vercel
# ---------------------------------------------------------------------------


class DeploymentState(StrEnum):
    QUEUED = "QUEUED"
    INITIALIZING = "INITIALIZING"
    BUILDING = "BUILDING"
    READY = "READY"
    ERROR = "ERROR"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DeploymentState.READY,
            DeploymentState.ERROR,
            DeploymentState.CANCELED,
        )

    @classmethod
    def parse(cls, raw: Any) -> DeploymentState:
        """Parse a Vercel ``readyState``; unknown values count as in progress."""
        try:
            return cls(str(raw).upper())
        except ValueError:
            logger.warning("Unknown deployment state %r, treating as BUILDING", raw)
            return cls.BUILDING


def _as_https(url: str | None) -> str | None:
    if not url:
        return None
    return url if url.startswith(("http://", "https://")) else f"https://{url}"


class Deployment(_RemoteModel):
    id: str
    url: str | None = None
    state: DeploymentState = DeploymentState.QUEUED
    created_at: int | None = None
    ready_at: int | None = None
    error: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Deployment:
        """Build from a ``/v13/deployments`` or ``/v6/deployments`` item."""
        error = payload.get("errorMessage") or payload.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        return cls(
            id=str(payload.get("id") or payload.get("uid") or ""),
            url=_as_https(payload.get("url")),
            state=DeploymentState.parse(
                payload.get("readyState") or payload.get("state") or "QUEUED"
            ),
            created_at=payload.get("createdAt") or payload.get("created"),
            ready_at=payload.get("ready") or payload.get("readyAt"),
            error=error,
        )


class DeploymentResult(_RemoteModel):
    """Outcome of waiting on a deployment.

    Failures are data here; callers that want exceptions use
    :meth:`raise_for_outcome`.
    """

    success: bool
    deployment: Deployment | None = None
    url: str | None = None
    error: str | None = None
    timed_out: bool = False
    timeout_ms: int | None = None

    def raise_for_outcome(self) -> None:
        """Raise if the deployment did not become ready.

        Raises:
            DeploymentTimeoutError: If polling ran out of time.
            DeploymentFailedError: If the deployment ended in ERROR/CANCELED
                or could not be created.
        """
        if self.success:
            return
        deployment_id = self.deployment.id if self.deployment else None
        if self.timed_out:
            raise DeploymentTimeoutError(
                deployment_id or "unknown", self.timeout_ms or 0
            )
        raise DeploymentFailedError(deployment_id, self.error or "Deployment failed")


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------


class PullRequest(_RemoteModel):
    number: int
    url: str
    html_url: str


class PullRequestReview(_RemoteModel):
    state: str
    login: str


class PullRequestStatus(_RemoteModel):
    state: str
    mergeable: bool | None = None
    reviews: list[PullRequestReview] = Field(default_factory=list)


class PullRequestConfig(_RemoteModel):
    title: str
    body: str
    head: str
    base: str = "main"
    labels: list[str] = Field(default_factory=list)
    reviewers: list[str] = Field(default_factory=list)
    assignees: list[str] = Field(default_factory=list)
